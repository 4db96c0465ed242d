"""Core data models — shared Pydantic types for the CodeCoach assistant.

Every document snapshot, diagnostic, guidance stage, panel message and API
response flows through these types. They are the shared vocabulary that
lets the scheduler, orchestrator, translator and guidance service talk
without ambiguity.

This is a Tier 1 leaf module: it imports only from pydantic and the stdlib.
No project imports allowed — everything else imports from here.

Usage:
    from codecoach.schemas import TextDocument, DiagnosticRecord, Stage
"""

from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Source tag on every diagnostic produced from a model reply. The quick-fix
# layer uses it to tell AI findings apart from compiler diagnostics.
AI_DIAGNOSTIC_SOURCE = "🤖 AI代码分析"

Severity = Literal["error", "warning", "information", "hint"]


# ---------------------------------------------------------------------------
# Documents (editor snapshots)
# ---------------------------------------------------------------------------


class TextDocument(BaseModel):
    """Immutable snapshot of an editor document at one version.

    The editor owns the live buffer; the assistant only ever sees snapshots
    handed over by the Workspace hook. Lines are split on "\\n" so that a
    trailing newline yields a final empty line, matching editor line counts.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    language_id: str
    version: int = 1
    text: str = ""

    @cached_property
    def lines(self) -> list[str]:
        # Split once per snapshot; the text never changes.
        return [line.rstrip("\r") for line in self.text.split("\n")]

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def size_kb(self) -> float:
        return len(self.text) / 1024

    def line_at(self, line: int) -> str:
        """Returns the text of a 0-based line, clamped into the document."""
        lines = self.lines
        return lines[max(0, min(line, len(lines) - 1))]


class AnalysisJob(BaseModel):
    """One queued analysis request — the document as it was when scheduled.

    document_version is kept so the consumer can discard results for a
    document that changed or closed while the job was in flight.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    document_version: int
    source_text: str
    language_id: str


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TextRange(BaseModel):
    """0-based, end-exclusive character range inside a document."""

    model_config = ConfigDict(frozen=True)

    start_line: int
    start_character: int
    end_line: int
    end_character: int


class DiagnosticRecord(BaseModel):
    """An editor-surfaced issue derived from a model reply.

    raw_severity keeps whatever the model said; effective_severity is what
    the editor shows. effective_severity is never "error" for AI findings
    (see translator.map_severity). related_information holds suggestion
    lines in the "建议: ..." form that the quick-fix actions parse back.
    """

    model_config = ConfigDict(frozen=True)

    line: int
    range: TextRange
    message: str
    raw_severity: str
    effective_severity: Severity
    code: str = "AI.Analysis"
    source: str = AI_DIAGNOSTIC_SOURCE
    suggestion: str | None = None
    related_information: list[str] = Field(default_factory=list)
    downgraded: bool = False


# ---------------------------------------------------------------------------
# Progressive guidance
# ---------------------------------------------------------------------------


class Stage(str, Enum):
    """The five tutoring stages, in unlock order."""

    PROBLEM_ANALYSIS = "problem-analysis"
    CODE_STRUCTURE = "code-structure"
    KEY_HINTS = "key-hints"
    DETAILED_GUIDANCE = "detailed-guidance"
    GUIDED_CODE = "guided-code"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


class GuidanceProgress(BaseModel):
    """Which stages of one exercise are unlocked and which one is shown.

    Mutable: the guidance service appends to unlocked_stages and moves
    current_stage. unlocked_stages is always a prefix of STAGE_ORDER.
    """

    exercise_id: str
    unlocked_stages: list[Stage] = Field(default_factory=lambda: [Stage.PROBLEM_ANALYSIS])
    current_stage: Stage = Stage.PROBLEM_ANALYSIS


# ---------------------------------------------------------------------------
# Quick-fix / help / completion results
# ---------------------------------------------------------------------------


class FixProposal(BaseModel):
    """A model-generated replacement for the code around a diagnostic."""

    model_config = ConfigDict(frozen=True)

    problem: str
    suggestion: str
    fixed_code: str
    range: TextRange


class CodeAction(BaseModel):
    """An action the editor can offer next to an AI diagnostic."""

    model_config = ConfigDict(frozen=True)

    title: str
    kind: Literal["quickfix"] = "quickfix"
    command: Literal["requestAIFix", "requestAIHelp"]
    diagnostic: DiagnosticRecord
    suggestion: str | None = None


class CompletionItem(BaseModel):
    """One single-line completion suggestion."""

    model_config = ConfigDict(frozen=True)

    label: str
    sort_text: str
    detail: str = "🤖 AI建议"
    description: str = "AI补全"
    language_detail: str = ""


# ---------------------------------------------------------------------------
# Guidance panel messages (webview channel)
# ---------------------------------------------------------------------------


class _PanelMessage(BaseModel):
    """Panel messages use camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RequestGuidanceMessage(_PanelMessage):
    command: Literal["requestGuidance"]
    exercise_id: str = Field(alias="exerciseId", min_length=1)
    stage: Stage
    force_refresh: bool = Field(default=False, alias="forceRefresh")


class UnlockNextStepMessage(_PanelMessage):
    command: Literal["unlockNextStep"]
    exercise_id: str = Field(alias="exerciseId", min_length=1)


PanelRequest = Annotated[
    RequestGuidanceMessage | UnlockNextStepMessage,
    Field(discriminator="command"),
]


class GuidanceContentMessage(_PanelMessage):
    command: Literal["guidanceContent"] = "guidanceContent"
    stage: Stage
    content: str


class StepUnlockedMessage(_PanelMessage):
    command: Literal["stepUnlocked"] = "stepUnlocked"
    stage: Stage | None


class GuidanceLoadingMessage(_PanelMessage):
    command: Literal["guidanceLoading"] = "guidanceLoading"
    stage: Stage
    loading: bool


class PanelErrorMessage(_PanelMessage):
    command: Literal["error"] = "error"
    message: str


# ---------------------------------------------------------------------------
# API envelope
# ---------------------------------------------------------------------------


class ApiError(BaseModel):
    """Error detail inside ApiResponse.error.

    code is an uppercase string like "DOCUMENT_NOT_FOUND", "AI_UNAVAILABLE",
    "STAGE_LOCKED". Not an enum — error codes grow with the API.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ApiResponse(BaseModel):
    """Universal response envelope — every API endpoint returns this shape."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    data: Any | None = None
    error: ApiError | None = None
