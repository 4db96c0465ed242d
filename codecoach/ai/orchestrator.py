"""Rate-limited request orchestrator — the single gate for all model calls.

Every outbound model call (document analysis, guidance generation,
quick-fix, help, completion) is submitted here. One worker task drains a
FIFO channel and dispatches strictly one request at a time, so the
process-wide request cadence never exceeds 1 / min_interval.

Dispatch rules:
- Before every attempt, sleep for ``min_interval - (now - last_request)``
  when positive. The clock is stamped as the attempt starts.
- Transport errors and non-2xx replies (404 included) are retried with a
  fixed delay, up to ``max_attempts`` attempts in total. The last error
  then propagates to the caller unchanged; this layer never shows UI.
- Configuration and malformed-response errors are not retried.
- A request carrying a ``dedupe_key`` replaces any queued, not yet
  dispatched request with the same key; the replaced caller receives
  JobSupersededError. In-flight requests are never cancelled.

Consumed by:
- CodeAnalyzer (document analysis)
- ProgressiveGuide (stage content)
- QuickFixService / CompletionService

Tier 2 service: imports from providers/base (T1), usage (T2), models (T1).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from codecoach.ai.providers.base import (
    AIProvider,
    EndpointNotFoundError,
    JobSupersededError,
    ModelCallError,
    is_retryable,
)
from codecoach.ai.usage import log_ai_call
from codecoach.models import ModelConfig

logger = logging.getLogger("codecoach.ai.orchestrator")

_DEFAULT_MIN_INTERVAL_MS = 2000
_DEFAULT_MAX_ATTEMPTS = 3
_DEFAULT_RETRY_DELAY_MS = 2000


@dataclass(frozen=True)
class ModelRequest:
    """One outbound model call, as queued.

    Attributes:
        call_type: Kind of call, for logging ("analysis", "guidance", ...).
        system_prompt: Persona/instructions for the system message.
        user_prompt: The user message.
        model_config: Model name and sampling parameters.
        subject: Document or exercise id the call serves (logging only).
        dedupe_key: Queued requests sharing a key supersede each other.
    """

    call_type: str
    system_prompt: str
    user_prompt: str
    model_config: ModelConfig
    subject: str = ""
    dedupe_key: str | None = None


@dataclass
class _Pending:
    request: ModelRequest
    future: asyncio.Future[str]
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestOrchestrator:
    """Single-flight, rate-limited, retrying dispatcher for model calls.

    Construct exactly one per process and share it; the rate floor is only
    global if every caller goes through the same instance.

    Args:
        provider: Model client that performs one request per call.
        min_interval_ms: Minimum gap between the starts of two requests.
        max_attempts: Total attempts per request (first try included).
        retry_delay_ms: Fixed delay between attempts.
        clock: Monotonic clock in seconds (injectable for tests).
        sleep: Coroutine used for every wait (injectable for tests).
    """

    def __init__(
        self,
        provider: AIProvider,
        *,
        min_interval_ms: int = _DEFAULT_MIN_INTERVAL_MS,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        retry_delay_ms: int = _DEFAULT_RETRY_DELAY_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._provider = provider
        self._min_interval = min_interval_ms / 1000
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_ms / 1000
        self._clock = clock
        self._sleep = sleep

        self._queue: deque[_Pending] = deque()
        self._wakeup: asyncio.Event | None = None
        self._worker: asyncio.Task[None] | None = None
        self._last_request_time: float | None = None
        self._processing = False
        self._closed = False

    # -- Introspection -----------------------------------------------------

    @property
    def pending_count(self) -> int:
        """Number of queued, not yet dispatched requests."""
        return len(self._queue)

    @property
    def processing(self) -> bool:
        """True while a request (including its retries) is in flight."""
        return self._processing

    @property
    def last_request_time(self) -> float | None:
        return self._last_request_time

    @property
    def provider(self) -> AIProvider:
        return self._provider

    # -- Submission ----------------------------------------------------------

    def enqueue(self, request: ModelRequest) -> asyncio.Future[str]:
        """Queues a request and returns a future for its reply text.

        Must be called from inside a running event loop.

        Raises:
            RuntimeError: If the orchestrator has been closed.
            ConfigurationError: The provider has no key or endpoint. Raised
                before queueing, so the rate clock is left untouched.
        """
        if self._closed:
            raise RuntimeError("RequestOrchestrator is closed")
        self._provider.check_configured()

        loop = asyncio.get_running_loop()
        if request.dedupe_key is not None:
            self._supersede(request.dedupe_key)

        future: asyncio.Future[str] = loop.create_future()
        self._queue.append(_Pending(request=request, future=future))
        self._ensure_worker(loop)
        assert self._wakeup is not None
        self._wakeup.set()

        logger.debug(
            "Queued %s request for %s (queue depth %d)",
            request.call_type,
            request.subject or "-",
            len(self._queue),
        )
        return future

    async def submit(self, request: ModelRequest) -> str:
        """Queues a request and waits for its reply text.

        Raises:
            ModelCallError: Terminal failure after the retry budget, a
                non-retryable error, or JobSupersededError.
        """
        return await self.enqueue(request)

    def _supersede(self, dedupe_key: str) -> None:
        """Drops queued requests with the given key, failing their futures."""
        stale = [p for p in self._queue if p.request.dedupe_key == dedupe_key]
        for pending in stale:
            self._queue.remove(pending)
            if not pending.future.done():
                pending.future.set_exception(
                    JobSupersededError(f"Request superseded by a newer one for {dedupe_key}")
                )
            logger.debug("Superseded queued request for %s", dedupe_key)

    # -- Worker ----------------------------------------------------------------

    def _ensure_worker(self, loop: asyncio.AbstractEventLoop) -> None:
        """Starts the worker task if it is missing, finished or on another loop."""
        worker = self._worker
        if worker is not None and not worker.done() and worker.get_loop() is loop:
            return
        self._wakeup = asyncio.Event()
        self._worker = loop.create_task(self._run(), name="codecoach-orchestrator")

    async def _run(self) -> None:
        """Drains the queue forever, one request at a time."""
        wakeup = self._wakeup
        assert wakeup is not None
        while True:
            while not self._queue:
                wakeup.clear()
                await wakeup.wait()

            pending = self._queue.popleft()
            if pending.future.done():
                # Caller gave up (cancelled) before dispatch.
                continue

            self._processing = True
            try:
                text = await self._dispatch(pending.request)
            except asyncio.CancelledError:
                if not pending.future.done():
                    pending.future.cancel()
                raise
            except Exception as exc:
                if not pending.future.done():
                    pending.future.set_exception(exc)
            else:
                if not pending.future.done():
                    pending.future.set_result(text)
            finally:
                self._processing = False

    async def _throttle(self) -> None:
        """Sleeps until min_interval has passed since the last request start."""
        if self._last_request_time is None:
            return
        wait = self._min_interval - (self._clock() - self._last_request_time)
        if wait > 0:
            logger.debug("Rate limit: waiting %.0fms before next request", wait * 1000)
            await self._sleep(wait)

    async def _dispatch(self, request: ModelRequest) -> str:
        """Performs one request with pacing and fixed-delay retry.

        Returns:
            The reply text.

        Raises:
            ModelCallError: The last error once the budget is exhausted, or
                the first non-retryable error.
        """
        last_exc: ModelCallError | None = None
        for attempt in range(1, self._max_attempts + 1):
            if attempt > 1:
                logger.warning(
                    "Model call retry %d/%d for %s after %.1fs delay: %s",
                    attempt - 1,
                    self._max_attempts - 1,
                    request.subject or request.call_type,
                    self._retry_delay,
                    last_exc,
                )
                await self._sleep(self._retry_delay)

            await self._throttle()
            started = self._clock()
            self._last_request_time = started

            try:
                text, usage = await self._provider.complete(
                    system_prompt=request.system_prompt,
                    user_prompt=request.user_prompt,
                    model_config=request.model_config,
                )
            except EndpointNotFoundError as exc:
                logger.error("API endpoint not found, check the endpoint URL: %s", exc.endpoint)
                last_exc = exc
            except ModelCallError as exc:
                if not is_retryable(exc):
                    logger.error(
                        "Model call for %s failed without retry: %s",
                        request.subject or request.call_type,
                        exc,
                    )
                    raise
                last_exc = exc
            else:
                log_ai_call(
                    model_id=request.model_config.model_id,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                    latency_ms=(self._clock() - started) * 1000,
                    call_type=request.call_type,
                    subject=request.subject,
                    attempts=attempt,
                )
                return text

        assert last_exc is not None
        logger.error(
            "Model call for %s failed after %d attempts: %s",
            request.subject or request.call_type,
            self._max_attempts,
            last_exc,
        )
        raise last_exc

    # -- Lifecycle -------------------------------------------------------------

    async def aclose(self) -> None:
        """Stops the worker, cancels queued requests, closes the provider."""
        self._closed = True
        while self._queue:
            pending = self._queue.popleft()
            if not pending.future.done():
                pending.future.cancel()
        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            if worker.get_loop() is asyncio.get_running_loop():
                try:
                    await worker
                except asyncio.CancelledError:
                    pass
        self._worker = None
        await self._provider.aclose()
