"""Tests for codecoach.ai.quickfix — code actions, fix and help requests."""

import pytest

from codecoach.ai.providers.base import ModelTransportError
from codecoach.ai.quickfix import (
    HELP_ACTION_TITLE,
    QuickFixService,
    code_actions,
    context_window,
    extract_code,
    suggestion_of,
)


@pytest.fixture
def make_quickfix(make_orchestrator, make_settings, mock_provider):
    """Returns a factory for QuickFixServices over a MockProvider."""

    def _make(provider=None) -> QuickFixService:
        return QuickFixService(make_orchestrator(provider or mock_provider()), make_settings())

    return _make


class TestContextWindow:
    """The problem line is marked; neighbours are indented."""

    def test_marks_problem_line(self, make_document) -> None:
        document = make_document(text="a\nb\nc\nd\ne")
        window = context_window(document, 2, 1)
        assert window == "  b\n→ c\n  d\n"

    def test_clamped_at_edges(self, make_document) -> None:
        document = make_document(text="a\nb\nc")
        assert context_window(document, 0, 5) == "→ a\n  b\n  c\n"


class TestExtractCode:
    """The first fenced block wins; bare replies are used as-is."""

    @pytest.mark.parametrize(
        ("reply", "expected"),
        [
            ("```cpp\nif (p) cout << *p;\n```", "if (p) cout << *p;"),
            ("修复如下:\n```\nint x = 0;\n```\n说明...", "int x = 0;"),
            ("```c++\nreturn 0;\n```", "return 0;"),
            ("  int y = 1;  ", "int y = 1;"),
        ],
    )
    def test_extract(self, reply, expected) -> None:
        assert extract_code(reply) == expected


class TestCodeActions:
    """AI diagnostics get a quick fix (when they carry a suggestion) and a help action."""

    def test_fix_and_help(self, make_diagnostic) -> None:
        diagnostic = make_diagnostic()
        actions = code_actions([diagnostic])

        assert [a.command for a in actions] == ["requestAIFix", "requestAIHelp"]
        fix, help_action = actions
        assert fix.title == "🤖 在解引用前检查指针是否为空"
        assert fix.suggestion == "建议: 在解引用前检查指针是否为空"
        assert fix.kind == "quickfix"
        assert help_action.title == HELP_ACTION_TITLE

    def test_help_only_without_suggestion(self, make_diagnostic) -> None:
        actions = code_actions([make_diagnostic(suggestion=None)])
        assert [a.command for a in actions] == ["requestAIHelp"]

    def test_compiler_diagnostics_ignored(self, make_diagnostic) -> None:
        assert code_actions([make_diagnostic(source="g++")]) == []

    def test_suggestion_of(self, make_diagnostic) -> None:
        assert suggestion_of(make_diagnostic()) == "建议: 在解引用前检查指针是否为空"
        assert suggestion_of(make_diagnostic(related_information=["see docs"])) is None


class TestRequestFix:
    """request_fix() sends the marked context and returns the replacement."""

    @pytest.mark.asyncio
    async def test_fix_proposal(self, make_quickfix, mock_provider, make_document, make_diagnostic) -> None:
        provider = mock_provider(responses=["```cpp\nif (p) cout << *p << endl;\n```"])
        service = make_quickfix(provider)
        diagnostic = make_diagnostic()

        proposal = await service.request_fix(make_document(), diagnostic, "建议: 检查空指针")

        assert proposal.fixed_code == "if (p) cout << *p << endl;"
        assert proposal.suggestion == "检查空指针"
        assert proposal.problem == diagnostic.message
        assert proposal.range == diagnostic.range

        call = provider.calls[0]
        assert "→     cout << *p << endl;" in call.user_prompt
        assert '"检查空指针"' in call.user_prompt
        assert call.model_config.temperature == 0.1
        assert call.model_config.max_tokens == 1000

    @pytest.mark.asyncio
    async def test_bare_suggestion_accepted(self, make_quickfix, make_document, make_diagnostic) -> None:
        proposal = await make_quickfix().request_fix(make_document(), make_diagnostic(), "检查空指针")
        assert proposal.suggestion == "检查空指针"

    @pytest.mark.asyncio
    async def test_failure_propagates(self, make_quickfix, mock_provider, make_document, make_diagnostic) -> None:
        service = make_quickfix(mock_provider(error=ModelTransportError("down")))
        with pytest.raises(ModelTransportError):
            await service.request_fix(make_document(), make_diagnostic(), "建议: x")


class TestRequestHelp:
    """request_help() returns the model's explanation verbatim."""

    @pytest.mark.asyncio
    async def test_help(self, make_quickfix, mock_provider, make_document, make_diagnostic) -> None:
        provider = mock_provider(responses=["详细解释"])
        service = make_quickfix(provider)

        text = await service.request_help(make_document(), make_diagnostic())

        assert text == "详细解释"
        call = provider.calls[0]
        assert "#include <iostream>" in call.user_prompt
        assert "→     cout << *p << endl;" in call.user_prompt
        assert call.model_config.max_tokens == 2000
