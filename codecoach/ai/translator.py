"""Diagnostic translator — model reply text → DiagnosticRecords.

The analysis prompt asks for a JSON array of issues, but models wrap it in
prose, fences and apologies. Translation is therefore two steps:

1. ``extract_issue_array`` — the single place that decides what counts as
   a recoverable reply. Takes the widest ``[...]`` span; if that is not
   valid JSON (prose after the array containing "]"), decodes from the
   first "[" and ignores trailing text. No array at all is not an error
   (zero issues); an array that does not parse is.
2. ``translate`` — validates every issue, then maps it onto the document.
   One bad issue fails the whole batch (fail-closed): the caller gets zero
   diagnostics plus one error message, never a partial set.

Severity policy: model "error" is shown as a warning with a visible
marker, so AI findings never look like blocking compiler errors.

Tier 2 service: imports from schemas (T1) + pydantic.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from codecoach.schemas import AI_DIAGNOSTIC_SOURCE, DiagnosticRecord, Severity, TextDocument, TextRange

logger = logging.getLogger("codecoach.ai.translator")

# Widest bracketed span. re.search finds the first "[", [\s\S]* runs to the last "]".
_ISSUE_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")

# Quick-fix and help actions parse this prefix back out of related information.
SUGGESTION_PREFIX = "建议: "
_SUGGESTION_TAG = "建议:"

# Prepended to the message of a model "error" shown at warning level.
DOWNGRADE_MARKER = "[AI判定: error] "

DEFAULT_ISSUE_CODE = "AI.Analysis"

_SEVERITY_MAP: dict[str, Severity] = {
    "warning": "warning",
    "info": "information",
    "information": "information",
}

PARSE_FAILURE_MESSAGE = "解析AI分析结果失败，请查看日志获取详细信息"


class IssueParseError(ValueError):
    """The reply contained an issue array that could not be used."""


class ModelIssue(BaseModel):
    """One issue as the model reports it. Lines and columns are 1-based."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    line: int | None = None
    message: str
    severity: str | None = None
    code: str | int | None = None
    suggestion: str | None = None
    column: int | None = None
    end_column: int | None = Field(default=None, alias="endColumn")


@dataclass
class TranslationResult:
    """Outcome of translating one reply.

    Attributes:
        diagnostics: Translated records (empty on failure).
        error: User-facing message when the batch was rejected, else None.
        found_array: Whether the reply contained an issue array at all.
    """

    diagnostics: list[DiagnosticRecord] = field(default_factory=list)
    error: str | None = None
    found_array: bool = False


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_issue_array(reply: str) -> list[Any] | None:
    """Finds and decodes the JSON issue array embedded in a reply.

    Args:
        reply: Raw model reply text.

    Returns:
        The decoded list, or None if the reply contains no bracketed span.

    Raises:
        IssueParseError: If a bracketed span exists but is not a JSON array.
    """
    match = _ISSUE_ARRAY_PATTERN.search(reply)
    if match is None:
        return None

    candidate = match.group(0)
    try:
        decoded = json.loads(candidate)
    except json.JSONDecodeError as exc:
        # Trailing prose may contain its own "]": decode from the first "["
        # and stop where the array ends.
        try:
            decoded, _ = json.JSONDecoder().raw_decode(candidate)
        except json.JSONDecodeError:
            raise IssueParseError(f"Issue array is not valid JSON: {exc}") from exc

    if not isinstance(decoded, list):
        raise IssueParseError(f"Expected a JSON array, got {type(decoded).__name__}")
    return decoded


def validate_issues(items: list[Any]) -> list[ModelIssue]:
    """Validates every decoded issue. All-or-nothing.

    Raises:
        IssueParseError: If any item is not a valid issue object.
    """
    issues: list[ModelIssue] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise IssueParseError(f"Issue {index} is {type(item).__name__}, expected object")
        try:
            issues.append(ModelIssue.model_validate(item))
        except ValidationError as exc:
            raise IssueParseError(f"Issue {index} is invalid: {exc}") from exc
    return issues


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def map_severity(raw: str | None) -> tuple[Severity, bool]:
    """Applies the downgrade policy to a model severity.

    Returns:
        (effective severity, whether an "error" was downgraded).
        "error" → warning (downgraded); "warning" → warning;
        "info"/"information" → information; anything else → information.
    """
    lowered = (raw or "").strip().lower()
    if lowered == "error":
        return "warning", True
    return _SEVERITY_MAP.get(lowered, "information"), False


def format_suggestion(suggestion: str) -> str:
    """Related-information text for a suggestion ("建议: ...")."""
    return f"{SUGGESTION_PREFIX}{suggestion}"


def parse_suggestion(related_message: str) -> str | None:
    """Recovers the suggestion from a related-information message.

    Returns:
        The suggestion text, or None if the message has no 建议 prefix.
    """
    if not related_message.startswith(_SUGGESTION_TAG):
        return None
    return related_message[len(_SUGGESTION_TAG):].strip()


def _issue_range(issue: ModelIssue, line: int, line_text: str) -> TextRange:
    """Sub-range when both columns are given, else the full line."""
    line_length = len(line_text)
    if issue.column and issue.end_column:
        start = min(max(0, issue.column - 1), line_length)
        end = min(max(start, issue.end_column), line_length)
        return TextRange(start_line=line, start_character=start, end_line=line, end_character=end)
    return TextRange(start_line=line, start_character=0, end_line=line, end_character=line_length)


def to_diagnostic(issue: ModelIssue, document: TextDocument) -> DiagnosticRecord:
    """Maps one validated issue onto the document."""
    last_line = max(0, document.line_count - 1)
    line = min(max(0, (issue.line or 1) - 1), last_line)
    line_text = document.line_at(line)

    effective, downgraded = map_severity(issue.severity)
    message = f"{DOWNGRADE_MARKER}{issue.message}" if downgraded else issue.message

    suggestion = issue.suggestion.strip() if issue.suggestion else None
    related = [format_suggestion(suggestion)] if suggestion else []

    return DiagnosticRecord(
        line=line,
        range=_issue_range(issue, line, line_text),
        message=message,
        raw_severity=issue.severity or "",
        effective_severity=effective,
        code=str(issue.code) if issue.code not in (None, "") else DEFAULT_ISSUE_CODE,
        source=AI_DIAGNOSTIC_SOURCE,
        suggestion=suggestion,
        related_information=related,
        downgraded=downgraded,
    )


def translate(reply: str, document: TextDocument) -> TranslationResult:
    """Turns a model reply into diagnostics for the given document.

    Never raises on bad model output: a missing array yields zero
    diagnostics (logged as a warning), a malformed one yields zero
    diagnostics plus ``error``.

    Args:
        reply: Raw model reply text.
        document: The document snapshot the analysis was run on.

    Returns:
        TranslationResult with diagnostics or an error message.
    """
    try:
        items = extract_issue_array(reply)
        if items is None:
            logger.warning(
                "No issue array in model reply for %s, producing no diagnostics",
                document.document_id,
            )
            return TranslationResult()
        issues = validate_issues(items)
    except IssueParseError as exc:
        logger.error(
            "Failed to parse analysis result for %s: %s. Raw reply: %s",
            document.document_id,
            exc,
            reply,
        )
        return TranslationResult(error=PARSE_FAILURE_MESSAGE, found_array=True)

    diagnostics = [to_diagnostic(issue, document) for issue in issues]
    return TranslationResult(diagnostics=diagnostics, found_array=True)
