"""Quick-fix and help actions for AI diagnostics.

Diagnostics produced by the translator carry their suggestion as a
"建议: ..." related-information line. This module turns such a diagnostic
back into editor actions (code_actions) and runs the two follow-up model
calls those actions trigger:

- request_fix: a replacement snippet for the code around the problem line
- request_help: a longer explanation with alternative fixes

Both go through the shared orchestrator. Failures propagate as
ModelCallError; the API layer turns them into error responses.

Tier 2 service: imports from orchestrator (T2), translator (T2),
prompts (T1), schemas (T1), config (T2), models (T1).
"""

from __future__ import annotations

import logging
import re

from codecoach.ai import prompts
from codecoach.ai.orchestrator import ModelRequest, RequestOrchestrator
from codecoach.ai.translator import parse_suggestion
from codecoach.config import Settings
from codecoach.models import CALL_FIX, CALL_HELP, resolve_call
from codecoach.schemas import (
    AI_DIAGNOSTIC_SOURCE,
    CodeAction,
    DiagnosticRecord,
    FixProposal,
    TextDocument,
)

logger = logging.getLogger("codecoach.ai.quickfix")

_FIX_CONTEXT_RADIUS = 5
_HELP_CONTEXT_RADIUS = 10
_PROBLEM_LINE_MARKER = "→ "
_CONTEXT_LINE_INDENT = "  "

# First fenced block; the language tag (```cpp, ```c++ ...) is optional.
_CODE_BLOCK_PATTERN = re.compile(r"```(?:[\w+#-]+)?\s*([\s\S]*?)\s*```")

HELP_ACTION_TITLE = "获取更多帮助这个问题"


def context_window(document: TextDocument, line: int, radius: int) -> str:
    """Lines around ``line`` with the problem line marked by an arrow."""
    lines = document.lines
    start = max(0, line - radius)
    end = min(len(lines) - 1, line + radius)
    window = []
    for index in range(start, end + 1):
        prefix = _PROBLEM_LINE_MARKER if index == line else _CONTEXT_LINE_INDENT
        window.append(f"{prefix}{lines[index]}\n")
    return "".join(window)


def extract_code(reply: str) -> str:
    """First fenced code block of a reply, or the whole reply trimmed."""
    match = _CODE_BLOCK_PATTERN.search(reply)
    return match.group(1).strip() if match else reply.strip()


def suggestion_of(diagnostic: DiagnosticRecord) -> str | None:
    """The "建议:" related message of a diagnostic, verbatim, if present."""
    if not diagnostic.related_information:
        return None
    first = diagnostic.related_information[0]
    return first if parse_suggestion(first) is not None else None


def code_actions(diagnostics: list[DiagnosticRecord]) -> list[CodeAction]:
    """Editor actions for every AI-sourced diagnostic.

    Each AI diagnostic gets a quick-fix action when it carries a
    suggestion, and always a "more help" action. Compiler diagnostics
    (any other source) get nothing.
    """
    actions: list[CodeAction] = []
    for diagnostic in diagnostics:
        if diagnostic.source != AI_DIAGNOSTIC_SOURCE:
            continue
        suggestion = suggestion_of(diagnostic)
        if suggestion is not None:
            actions.append(
                CodeAction(
                    title=f"🤖 {parse_suggestion(suggestion)}",
                    command="requestAIFix",
                    diagnostic=diagnostic,
                    suggestion=suggestion,
                )
            )
        actions.append(
            CodeAction(title=HELP_ACTION_TITLE, command="requestAIHelp", diagnostic=diagnostic)
        )
    return actions


class QuickFixService:
    """Fix and help generation for a single diagnostic.

    Args:
        orchestrator: The process-wide request orchestrator.
        settings: Application settings.
    """

    def __init__(self, orchestrator: RequestOrchestrator, settings: Settings) -> None:
        self._orchestrator = orchestrator
        self._settings = settings

    async def request_fix(
        self, document: TextDocument, diagnostic: DiagnosticRecord, suggestion: str
    ) -> FixProposal:
        """Asks the model for a corrected snippet.

        Args:
            document: Current document snapshot.
            diagnostic: The diagnostic being fixed.
            suggestion: Suggestion text, with or without the 建议 prefix.

        Returns:
            FixProposal whose range is the diagnostic's range.

        Raises:
            ModelCallError: If the call fails terminally.
        """
        suggestion_text = parse_suggestion(suggestion)
        if suggestion_text is None:
            suggestion_text = suggestion.strip()

        context = context_window(document, diagnostic.range.start_line, _FIX_CONTEXT_RADIUS)
        request = ModelRequest(
            call_type=CALL_FIX,
            system_prompt=prompts.FIX_SYSTEM_PROMPT,
            user_prompt=prompts.build_fix_prompt(
                diagnostic.message, suggestion_text, context, document.language_id,
            ),
            model_config=resolve_call(CALL_FIX, self._settings),
            subject=document.document_id,
        )
        reply = await self._orchestrator.submit(request)
        logger.info("Generated fix for %s line %d", document.document_id, diagnostic.line)
        return FixProposal(
            problem=diagnostic.message,
            suggestion=suggestion_text,
            fixed_code=extract_code(reply),
            range=diagnostic.range,
        )

    async def request_help(self, document: TextDocument, diagnostic: DiagnosticRecord) -> str:
        """Asks the model to explain a diagnostic and offer alternatives.

        Raises:
            ModelCallError: If the call fails terminally.
        """
        context = context_window(document, diagnostic.range.start_line, _HELP_CONTEXT_RADIUS)
        request = ModelRequest(
            call_type=CALL_HELP,
            system_prompt=prompts.HELP_SYSTEM_PROMPT,
            user_prompt=prompts.build_help_prompt(
                diagnostic.message, context, document.language_id,
            ),
            model_config=resolve_call(CALL_HELP, self._settings),
            subject=document.document_id,
        )
        return await self._orchestrator.submit(request)
