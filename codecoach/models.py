"""Call profile registry — single source of truth for outbound model parameters.

Every model call in the assistant resolves its sampling parameters through
this module. The rest of the codebase names a call type ("analysis",
"guidance", ...) and never hard-codes temperatures or token limits.

Two-layer abstraction:
  Layer 1: A caller declares what kind of call it is (CALL_* constants)
  Layer 2: CALL_PROFILES resolves call type → sampling parameters, and
           resolve_call() binds them to the configured model name

The model name itself is deployment configuration (AI_MODEL_NAME), not a
code constant — the endpoint is any OpenAI-compatible chat-completions API.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codecoach.config import Settings

# ---------------------------------------------------------------------------
# Layer 1: Call types
# ---------------------------------------------------------------------------

CALL_ANALYSIS: str = "analysis"
CALL_FIX: str = "fix"
CALL_HELP: str = "help"
CALL_COMPLETION: str = "completion"
CALL_TAB: str = "tab"
CALL_GUIDANCE: str = "guidance"
CALL_CONNECTION_TEST: str = "connection-test"


# ---------------------------------------------------------------------------
# ModelConfig — everything the model client needs besides the prompt
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelConfig:
    """Bundles the request parameters for one chat-completion call.

    Tier 1 leaf — no project imports at runtime. Built by resolve_call(),
    consumed by provider implementations.
    """

    model_id: str          # e.g. "Qwen/Qwen2.5-Coder-7B-Instruct"
    temperature: float = 0.3
    max_tokens: int = 2000


@dataclass(frozen=True)
class CallProfile:
    """Sampling parameters for a call type, independent of the model name."""

    temperature: float
    max_tokens: int | None  # None = taken from settings at resolve time


# ---------------------------------------------------------------------------
# Layer 2: Call type → sampling parameters
# ---------------------------------------------------------------------------
# Low temperature everywhere: the assistant wants reproducible diagnostics
# and fixes. Fix generation and tab completion are the most literal (0.1);
# completions are short.

CALL_PROFILES: dict[str, CallProfile] = {
    CALL_ANALYSIS: CallProfile(temperature=0.3, max_tokens=2000),
    CALL_FIX: CallProfile(temperature=0.1, max_tokens=1000),
    CALL_HELP: CallProfile(temperature=0.3, max_tokens=2000),
    CALL_COMPLETION: CallProfile(temperature=0.2, max_tokens=300),
    CALL_TAB: CallProfile(temperature=0.1, max_tokens=100),
    CALL_GUIDANCE: CallProfile(temperature=0.3, max_tokens=None),
    CALL_CONNECTION_TEST: CallProfile(temperature=0.1, max_tokens=20),
}


def resolve_call(call_type: str, settings: Settings) -> ModelConfig:
    """Resolves a call type to a ModelConfig bound to the configured model.

    Args:
        call_type: One of the CALL_* constants.
        settings: Application settings (model name, guidance token budget).

    Returns:
        The ModelConfig for the call.

    Raises:
        KeyError: If the call type is not found in CALL_PROFILES.
    """
    profile = CALL_PROFILES[call_type]
    max_tokens = profile.max_tokens
    if max_tokens is None:
        max_tokens = settings.progressive_learning_max_tokens
    return ModelConfig(
        model_id=settings.ai_model_name,
        temperature=profile.temperature,
        max_tokens=max_tokens,
    )
