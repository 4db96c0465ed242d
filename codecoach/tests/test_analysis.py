"""Tests for codecoach.ai.analysis — one analysis pass end to end.

Uses the wired service graph (make_services) with a MockProvider, so each
test sees the real orchestrator, translator, workspace and diagnostic sink.
"""

import asyncio

import pytest

from codecoach.ai.analysis import MISSING_KEY_MESSAGE, OPEN_SETTINGS_ACTION, API_KEY_SETTING
from codecoach.ai.providers.base import (
    ConfigurationError,
    EndpointNotFoundError,
    ModelTransportError,
)
from codecoach.ai.translator import PARSE_FAILURE_MESSAGE
from codecoach.tests.conftest import SAMPLE_CPP

NULL_DEREF_REPLY = (
    '[{"line": 5, "message": "解引用空指针", "severity": "error", '
    '"suggestion": "在解引用前检查指针是否为空"}]'
)
DOC_ID = "file:///work/main.cpp"


def _open(services, text: str = SAMPLE_CPP, language_id: str = "cpp"):
    return services.workspace.open(DOC_ID, language_id, text)


class TestPublishing:
    """A successful pass replaces the document's diagnostic set."""

    @pytest.mark.asyncio
    async def test_publishes_translated_diagnostics(self, make_services, mock_provider) -> None:
        provider = mock_provider(responses=[NULL_DEREF_REPLY])
        services = make_services(provider)
        document = _open(services)

        diagnostics = await services.analyzer.analyze_document(document)

        assert len(diagnostics) == 1
        assert services.diagnostics.get(DOC_ID) == diagnostics
        assert diagnostics[0].line == 4
        assert diagnostics[0].effective_severity == "warning"
        assert services.analyzer.last_analyzed_version(DOC_ID) == 1

    @pytest.mark.asyncio
    async def test_prompt_carries_source(self, make_services, mock_provider) -> None:
        provider = mock_provider()
        services = make_services(provider)
        await services.analyzer.analyze_document(_open(services))

        call = provider.calls[0]
        assert SAMPLE_CPP in call.user_prompt
        assert "C++" in call.user_prompt
        assert call.model_config.temperature == 0.3
        assert call.model_config.max_tokens == 2000

    @pytest.mark.asyncio
    async def test_set_replaces_not_merges(self, make_services, mock_provider) -> None:
        provider = mock_provider(responses=[NULL_DEREF_REPLY, "[]"])
        services = make_services(provider)
        document = _open(services)

        await services.analyzer.analyze_document(document)
        await services.analyzer.analyze_document(document)

        assert services.diagnostics.get(DOC_ID) == []


class TestStaleness:
    """Replies for a document that changed or closed are discarded."""

    @pytest.mark.asyncio
    async def test_changed_while_in_flight(self, make_services, mock_provider) -> None:
        services = make_services(mock_provider(responses=[NULL_DEREF_REPLY], delay=0.03))
        document = _open(services)

        task = asyncio.ensure_future(services.analyzer.analyze_document(document))
        await asyncio.sleep(0.01)
        services.workspace.update(DOC_ID, SAMPLE_CPP + "\n// edited")
        result = await task

        assert result == []
        assert DOC_ID not in services.diagnostics

    @pytest.mark.asyncio
    async def test_closed_while_in_flight(self, make_services, mock_provider) -> None:
        services = make_services(mock_provider(responses=[NULL_DEREF_REPLY], delay=0.03))
        document = _open(services)

        task = asyncio.ensure_future(services.analyzer.analyze_document(document))
        await asyncio.sleep(0.01)
        services.workspace.close(DOC_ID)

        assert await task == []
        assert DOC_ID not in services.diagnostics

    @pytest.mark.asyncio
    async def test_superseded_pass_returns_nothing(self, make_services, mock_provider) -> None:
        provider = mock_provider(responses=["[]", NULL_DEREF_REPLY], delay=0.02)
        services = make_services(provider)
        other = services.workspace.open("file:///work/other.cpp", "cpp", "int x;")
        document = _open(services)

        busy = asyncio.ensure_future(services.analyzer.analyze_document(other))
        await asyncio.sleep(0.005)
        older = asyncio.ensure_future(services.analyzer.analyze_document(document))
        await asyncio.sleep(0)
        newer = asyncio.ensure_future(services.analyzer.analyze_document(document))

        await busy
        assert await older == []
        assert len(await newer) == 1
        assert provider.call_count == 2


class TestSkips:
    """Feature switch, size limit and missing key stop a pass before the network."""

    @pytest.mark.asyncio
    async def test_disabled_clears_and_skips(self, make_services, mock_provider, make_diagnostic) -> None:
        provider = mock_provider()
        services = make_services(provider, enable_ai_analysis=False)
        services.diagnostics.set(DOC_ID, [make_diagnostic()])

        assert await services.analyzer.analyze_document(_open(services)) == []
        assert DOC_ID not in services.diagnostics
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_force_bypasses_switch(self, make_services, mock_provider) -> None:
        provider = mock_provider(responses=[NULL_DEREF_REPLY])
        services = make_services(provider, enable_ai_analysis=False)

        diagnostics = await services.analyzer.analyze_document(_open(services), force=True)

        assert len(diagnostics) == 1
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_oversized_file(self, make_services, mock_provider, make_diagnostic) -> None:
        provider = mock_provider()
        services = make_services(provider, ai_max_file_size_kb=1)
        services.diagnostics.set(DOC_ID, [make_diagnostic()])
        document = _open(services, text="x" * 2048)

        assert await services.analyzer.analyze_document(document) == []
        assert DOC_ID not in services.diagnostics
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_force_bypasses_size_limit(self, make_services, mock_provider) -> None:
        provider = mock_provider()
        services = make_services(provider, ai_max_file_size_kb=1)

        await services.analyzer.analyze_document(_open(services, text="x" * 2048), force=True)

        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_warns_with_settings_action(self, make_services, mock_provider) -> None:
        provider = mock_provider()
        services = make_services(provider, ai_api_key="")
        services.notifier.warning_choice = OPEN_SETTINGS_ACTION

        assert await services.analyzer.analyze_document(_open(services)) == []

        assert provider.call_count == 0
        assert services.notifier.messages("warning") == [MISSING_KEY_MESSAGE]
        assert services.notifier.notifications[0].actions == (OPEN_SETTINGS_ACTION,)
        assert services.notifier.messages("settings") == [API_KEY_SETTING]

    @pytest.mark.asyncio
    async def test_dismissed_warning_opens_nothing(self, make_services, mock_provider) -> None:
        services = make_services(mock_provider(), ai_api_key="")

        await services.analyzer.analyze_document(_open(services))

        assert services.notifier.messages("settings") == []

    @pytest.mark.asyncio
    async def test_mock_backend_needs_no_key(self, make_services, mock_provider) -> None:
        provider = mock_provider()
        services = make_services(provider, ai_api_key="", ai_backend="mock")

        await services.analyzer.analyze_document(_open(services))

        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_runtime_disable_clears_everything(self, make_services, mock_provider, make_diagnostic) -> None:
        services = make_services(mock_provider())
        services.diagnostics.set("file:///a.cpp", [make_diagnostic()])
        services.diagnostics.set("file:///b.cpp", [make_diagnostic()])

        services.analyzer.set_enabled(False)

        assert services.diagnostics.get("file:///a.cpp") == []
        assert services.diagnostics.get("file:///b.cpp") == []


class TestFailures:
    """Terminal failures keep the last good set; bad replies clear it."""

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_previous(self, make_services, mock_provider) -> None:
        provider = mock_provider(
            responses=[NULL_DEREF_REPLY],
            errors=[None] + [ModelTransportError("连接超时")] * 3,
        )
        services = make_services(provider)
        document = _open(services)
        await services.analyzer.analyze_document(document)

        assert await services.analyzer.analyze_document(document) == []

        assert len(services.diagnostics.get(DOC_ID)) == 1
        errors = services.notifier.messages("error")
        assert len(errors) == 1
        assert errors[0].startswith("AI分析API调用失败: ")
        assert services.analyzer.last_analyzed_version(DOC_ID) is None

    @pytest.mark.asyncio
    async def test_endpoint_not_found_message(self, make_services, mock_provider) -> None:
        services = make_services(
            mock_provider(error=EndpointNotFoundError("https://bad.example/v1")),
        )

        await services.analyzer.analyze_document(_open(services))

        assert services.notifier.messages("error") == [
            "API端点不存在，请检查URL配置: https://bad.example/v1"
        ]

    @pytest.mark.asyncio
    async def test_configuration_error_warns(self, make_services, mock_provider) -> None:
        provider = mock_provider(error=ConfigurationError("未配置AI API密钥"))
        services = make_services(provider)

        await services.analyzer.analyze_document(_open(services))

        assert services.notifier.messages("warning") == [MISSING_KEY_MESSAGE]
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_reply_clears_and_reports_once(self, make_services, mock_provider) -> None:
        provider = mock_provider(responses=[NULL_DEREF_REPLY, '[{"line": 1}]'])
        services = make_services(provider)
        document = _open(services)
        await services.analyzer.analyze_document(document)

        assert await services.analyzer.analyze_document(document) == []

        assert services.diagnostics.get(DOC_ID) == []
        assert services.notifier.messages("error") == [PARSE_FAILURE_MESSAGE]


class TestSupport:
    """Language filter and per-document state."""

    @pytest.mark.asyncio
    async def test_supported_languages(self, make_services) -> None:
        services = make_services()
        assert services.analyzer.is_supported("cpp")
        assert services.analyzer.is_supported("c")
        assert not services.analyzer.is_supported("python")

    @pytest.mark.asyncio
    async def test_forget_clears_state(self, make_services, mock_provider) -> None:
        services = make_services(mock_provider(responses=[NULL_DEREF_REPLY]))
        await services.analyzer.analyze_document(_open(services))

        services.analyzer.forget(DOC_ID)

        assert services.analyzer.last_analyzed_version(DOC_ID) is None
        assert DOC_ID not in services.diagnostics
