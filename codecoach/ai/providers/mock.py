"""Mock model client for testing and development.

Deterministic, zero-cost AIProvider implementation that returns
configurable canned replies. Used by:
- Every orchestrator/analysis/guidance test (via conftest.mock_provider)
- Development mode without an API key (AI_BACKEND=mock)
- Reference implementation of the AIProvider contract

Tier 2 service — imports only from base.py (Tier 1).
"""

import asyncio
import time
from dataclasses import dataclass

from codecoach.ai.providers.base import AIProvider, ModelConfig, UsageInfo

_DEFAULT_RESPONSES = ["[]"]
_DEFAULT_USAGE = UsageInfo(prompt_tokens=10, completion_tokens=5)


@dataclass(frozen=True)
class RecordedCall:
    """One complete() invocation as seen by the mock."""

    system_prompt: str
    user_prompt: str
    model_config: ModelConfig
    started_at: float  # time.monotonic() at call start


class MockProvider(AIProvider):
    """Deterministic model client for testing.

    Replies are consumed in order, one per call; the last reply repeats once
    the list is exhausted. Errors work the same way: ``errors[i]`` (if not
    None) is raised by the i-th call instead of replying.

    Args:
        responses: Reply texts, one per call. Defaults to a single "[]".
        usage: Token usage returned with every reply. Defaults to 10/5.
        error: If set, every call raises this immediately.
        errors: Per-call errors; None entries succeed.
        delay: Seconds each call sleeps before answering (simulated latency).
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        usage: UsageInfo | None = None,
        error: Exception | None = None,
        errors: list[Exception | None] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = responses if responses is not None else list(_DEFAULT_RESPONSES)
        self.usage = usage or _DEFAULT_USAGE
        self.error = error
        self.errors = list(errors or [])
        self.delay = delay
        self.calls: list[RecordedCall] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model_config: ModelConfig,
    ) -> tuple[str, UsageInfo]:
        """Returns the next canned reply and the configured usage info.

        Raises the configured error (or the per-call error) instead, if set.
        """
        index = len(self.calls)
        self.calls.append(
            RecordedCall(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                model_config=model_config,
                started_at=time.monotonic(),
            )
        )

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.error is not None:
            raise self.error
        if index < len(self.errors) and self.errors[index] is not None:
            raise self.errors[index]

        if not self.responses:
            return "", self.usage
        text = self.responses[min(index, len(self.responses) - 1)]
        return text, self.usage
