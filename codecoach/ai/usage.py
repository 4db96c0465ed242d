"""Structured usage logging for model calls.

Emits one structured log line per completed model call with all fields
needed for cost and throughput analysis. Machine-parseable via the
``extra`` dict — standard JSON log formatters (e.g., python-json-logger)
pick these up automatically.

Logger name: ``codecoach.ai.usage``

Every orchestrated call logs call_type, model_id, prompt_tokens,
completion_tokens, latency_ms, subject (document or exercise id) and the
number of attempts it took.

Tier 2 service: imports only stdlib.
"""

import logging

logger = logging.getLogger("codecoach.ai.usage")


def log_ai_call(
    *,
    model_id: str,
    prompt_tokens: int,
    completion_tokens: int,
    latency_ms: float,
    call_type: str,
    subject: str,
    attempts: int,
) -> None:
    """Emits a structured INFO log for a completed model call.

    Args:
        model_id: The model identifier used for this call.
        prompt_tokens: Number of input tokens consumed.
        completion_tokens: Number of output tokens generated.
        latency_ms: Wall-clock duration of the successful attempt in milliseconds.
        call_type: The kind of call ("analysis", "guidance", "fix", ...).
        subject: Document id or exercise id the call serves.
        attempts: How many attempts the call needed (1 = first try).
    """
    logger.info(
        "AI call: %s %s tokens_in=%d tokens_out=%d latency=%.0fms subject=%s attempts=%d",
        call_type,
        model_id,
        prompt_tokens,
        completion_tokens,
        latency_ms,
        subject,
        attempts,
        extra={
            "model_id": model_id,
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "latency_ms": latency_ms,
            "call_type": call_type,
            "subject": subject,
            "attempts": attempts,
        },
    )
