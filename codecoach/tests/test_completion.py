"""Tests for codecoach.ai.completion — triggers, parsing, cache, inline completion."""

import asyncio

import pytest

from codecoach.ai import prompts
from codecoach.ai.completion import (
    CompletionService,
    clean_tab_completion,
    parse_completions,
    should_trigger,
)
from codecoach.ai.providers.base import ModelTransportError

CODE = "#include <vector>\nint main() {\n    std::vector<int> v;\n    v.pu\n}"


@pytest.fixture
def make_completion(make_orchestrator, make_settings, mock_provider):
    """Returns a factory for CompletionServices over a MockProvider."""

    def _make(provider=None, **setting_overrides) -> CompletionService:
        return CompletionService(
            make_orchestrator(provider or mock_provider()), make_settings(**setting_overrides),
        )

    return _make


class TestTrigger:
    """Blank, comment and too-short prefixes never reach the model."""

    @pytest.mark.parametrize(
        ("prefix", "expected"),
        [
            ("", False),
            ("    ", False),
            ("  // note", False),
            ("  v.", False),
            ("  v.pu", True),
            ("for (", True),
        ],
    )
    def test_should_trigger(self, prefix, expected) -> None:
        assert should_trigger(prefix, 3) is expected


class TestParse:
    """Replies are split into at most max_items single-line items."""

    def test_filters_noise(self) -> None:
        reply = "```cpp\nv.push_back(1);\n\nHere is a completion:\nv.pop_back();\n```"
        items = parse_completions(reply, "cpp", 5)
        assert [item.label for item in items] == ["v.push_back(1);", "v.pop_back();"]

    def test_limit_and_order(self) -> None:
        items = parse_completions("a1\na2\na3\na4", "cpp", 2)
        assert [item.label for item in items] == ["a1", "a2"]
        assert [item.sort_text for item in items] == ["000", "001"]

    def test_item_tags(self) -> None:
        item = parse_completions("x++;", "cpp", 5)[0]
        assert item.detail == "🤖 AI建议"
        assert item.language_detail == "C++"


class TestSuggest:
    """suggest() applies switches, trigger rules and the context cache."""

    @pytest.mark.asyncio
    async def test_suggestions(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["v.push_back(1);\nv.pop_back();"])
        service = make_completion(provider)

        items = await service.suggest(make_document(text=CODE), 3, 8)

        assert [item.label for item in items] == ["v.push_back(1);", "v.pop_back();"]
        call = provider.calls[0]
        assert call.user_prompt.count("std::vector<int> v;") == 1
        assert call.model_config.max_tokens == 300
        assert call.model_config.temperature == 0.2

    @pytest.mark.asyncio
    async def test_cached_by_context(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["v.push_back(1);"])
        service = make_completion(provider)
        document = make_document(text=CODE)

        await service.suggest(document, 3, 8)
        await service.suggest(document, 3, 8)

        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_edit_invalidates_cache(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["v.push_back(1);"])
        service = make_completion(provider)
        document = make_document(text=CODE)

        await service.suggest(document, 3, 8)
        edited = make_document(document_id=document.document_id, version=2,
                               text=CODE.replace("int main", "int  main"))
        await service.suggest(edited, 3, 8)

        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_short_prefix_skipped(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider()
        service = make_completion(provider)

        assert await service.suggest(make_document(text=CODE), 3, 5) == []
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_disabled(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider()
        service = make_completion(provider, enable_ai_code_completion=False)

        assert await service.suggest(make_document(text=CODE), 3, 8) == []
        assert provider.call_count == 0

        service.set_enabled(True)
        await service.suggest(make_document(text=CODE), 3, 8)
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_unsupported_language(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider()
        service = make_completion(provider)

        assert await service.suggest(make_document(text=CODE, language_id="python"), 3, 8) == []
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_line_out_of_range(self, make_completion, make_document) -> None:
        assert await make_completion().suggest(make_document(text=CODE), 99, 0) == []

    @pytest.mark.asyncio
    async def test_failure_is_empty(self, make_completion, mock_provider, make_document) -> None:
        service = make_completion(mock_provider(error=ModelTransportError("down")))
        assert await service.suggest(make_document(text=CODE), 3, 8) == []

    @pytest.mark.asyncio
    async def test_max_items_from_settings(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["a();\nb();\nc();"])
        service = make_completion(provider, completion_max_items=2)

        items = await service.suggest(make_document(text=CODE), 3, 8)

        assert len(items) == 2
        assert "最多2行" in provider.calls[0].user_prompt


class TestCleanTabCompletion:
    """Inline replies lose fences and prompt echoes and keep the line's indent."""

    def test_plain(self) -> None:
        assert clean_tab_completion("sh_back(1);", "    ") == "sh_back(1);"

    def test_fences_and_prefix(self) -> None:
        assert clean_tab_completion("```cpp\n补全: sh_back(1);\n```", "") == "sh_back(1);"
        assert clean_tab_completion("补全：sh_back(1);", "") == "sh_back(1);"

    def test_continuation_lines_are_indented(self) -> None:
        reply = "for (int x : v) {\ncout << x;\n}"
        assert clean_tab_completion(reply, "    ") == "for (int x : v) {\n    cout << x;\n    }"

    @pytest.mark.parametrize("reply", ["", "   ", ";", "```\n```", "补全: x"])
    def test_too_short(self, reply) -> None:
        assert clean_tab_completion(reply, "") is None


class TestInline:
    """inline() returns one continuation through the orchestrator."""

    @pytest.mark.asyncio
    async def test_inline_completion(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["sh_back(1);\nv.pop_back();"])
        service = make_completion(provider)

        completion = await service.inline(make_document(text=CODE), 3, 8)

        assert completion == "sh_back(1);\n    v.pop_back();"
        call = provider.calls[0]
        assert call.system_prompt == prompts.TAB_COMPLETION_SYSTEM_PROMPT
        assert call.model_config.temperature == 0.1
        assert call.model_config.max_tokens == 100
        assert call.user_prompt.endswith("补全:")

    @pytest.mark.asyncio
    async def test_context_is_eight_lines(self, make_completion, mock_provider, make_document) -> None:
        text = "\n".join(f"int a{i} = {i};" for i in range(12)) + "\n    v.pu"
        provider = mock_provider(responses=["sh_back(1);"])
        service = make_completion(provider)

        await service.inline(make_document(text=text), 12, 8)

        prompt = provider.calls[0].user_prompt
        assert "int a3 = 3;" not in prompt
        assert "int a4 = 4;" in prompt
        assert "int a11 = 11;\n    v.pu\n```" in prompt

    @pytest.mark.asyncio
    async def test_cached(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["sh_back(1);"])
        service = make_completion(provider)
        document = make_document(text=CODE)

        first = await service.inline(document, 3, 8)
        second = await service.inline(document, 3, 8)

        assert first == second == "sh_back(1);"
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_cache_is_bounded(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["sh_back(1);"])
        service = make_completion(provider)
        first = make_document(text=CODE)

        await service.inline(first, 3, 8)
        for index in range(50):
            await service.inline(make_document(text=f"int k{index};\n    v.pu"), 1, 8)
        await service.inline(first, 3, 8)

        assert provider.call_count == 52

    @pytest.mark.asyncio
    async def test_short_reply_is_none_and_not_cached(
        self, make_completion, mock_provider, make_document
    ) -> None:
        provider = mock_provider(responses=["x"])
        service = make_completion(provider)
        document = make_document(text=CODE)

        assert await service.inline(document, 3, 8) is None
        assert await service.inline(document, 3, 8) is None
        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_switch_is_separate(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider(responses=["sh_back(1);"])
        service = make_completion(provider, enable_tab_completion=False)

        assert await service.inline(make_document(text=CODE), 3, 8) is None
        assert provider.call_count == 0
        assert service.enabled is True

        service.set_tab_enabled(True)
        assert await service.inline(make_document(text=CODE), 3, 8) == "sh_back(1);"

    @pytest.mark.asyncio
    async def test_not_triggered(self, make_completion, mock_provider, make_document) -> None:
        provider = mock_provider()
        service = make_completion(provider)

        assert await service.inline(make_document(text=CODE), 3, 5) is None
        assert await service.inline(make_document(text=CODE, language_id="python"), 3, 8) is None
        assert await service.inline(make_document(text=CODE), 99, 0) is None
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_failure_is_none(self, make_completion, mock_provider, make_document) -> None:
        service = make_completion(mock_provider(error=ModelTransportError("down")))
        assert await service.inline(make_document(text=CODE), 3, 8) is None

    @pytest.mark.asyncio
    async def test_newer_request_supersedes_queued(
        self, make_completion, mock_provider, make_document
    ) -> None:
        provider = mock_provider(responses=["busy();", "sh_back(2);"], delay=0.02)
        service = make_completion(provider)
        document = make_document(text=CODE)
        older = make_document(document_id=document.document_id, text=CODE.replace("v.pu", "v.em"))

        busy = asyncio.ensure_future(
            service.inline(make_document(text=CODE.replace("v.pu", "v.re")), 3, 8)
        )
        await asyncio.sleep(0.005)
        stale = asyncio.ensure_future(service.inline(older, 3, 8))
        await asyncio.sleep(0)
        fresh = await service.inline(document, 3, 8)

        assert await busy == "busy();"
        assert await stale is None
        assert fresh == "sh_back(2);"
