"""Debounced analysis scheduler — many edit events, few analysis passes.

One timer for the whole process. Every change event for a supported
document cancels the pending timer and starts a new one; when a timer
finally expires, the document is re-read from the workspace so the pass
sees the latest text, not the text at schedule time. A burst of typing
therefore collapses into exactly one analysis.

Activation (switching editors) analyses immediately, but only if the
document changed since the last pass, so refocusing an unmodified file
costs nothing.

Consumed by:
- Documents API (change/activation/close events from the editor)

Tier 2 service: imports from analysis (T2), hooks/interfaces (T1), schemas (T1).
"""

from __future__ import annotations

import asyncio
import logging

from codecoach.ai.analysis import CodeAnalyzer
from codecoach.hooks.interfaces import Workspace
from codecoach.schemas import TextDocument

logger = logging.getLogger("codecoach.ai.scheduler")

_DEFAULT_DELAY_MS = 1500


class AnalysisScheduler:
    """Single-timer debounce in front of CodeAnalyzer.

    Must be driven from inside a running event loop (the timer and the
    analysis tasks are created on it).

    Args:
        analyzer: Runs and publishes analysis passes.
        workspace: Source of current document snapshots.
        delay_ms: Quiet period before a scheduled analysis fires.
    """

    def __init__(
        self,
        analyzer: CodeAnalyzer,
        workspace: Workspace,
        delay_ms: int = _DEFAULT_DELAY_MS,
    ) -> None:
        self._analyzer = analyzer
        self._workspace = workspace
        self._delay = delay_ms / 1000
        self._timer: asyncio.TimerHandle | None = None
        self._scheduled_document_id: str | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_document_id(self) -> str | None:
        """Document whose debounced analysis is waiting, if any."""
        return self._scheduled_document_id if self._timer is not None else None

    # -- Editor events -----------------------------------------------------------

    def on_document_changed(self, document: TextDocument) -> None:
        """Restarts the debounce timer for a supported document."""
        if not self._analyzer.is_supported(document.language_id):
            return
        self.schedule(document.document_id)

    def on_active_editor_changed(self, document: TextDocument | None) -> None:
        """Analyses the newly active document now, if it changed since last pass."""
        if document is None or not self._analyzer.is_supported(document.language_id):
            return
        if self._analyzer.last_analyzed_version(document.document_id) == document.version:
            logger.debug("Skipping analysis of unchanged %s", document.document_id)
            return
        if self._scheduled_document_id == document.document_id:
            self.cancel()
        self._start(document.document_id)

    def on_document_closed(self, document_id: str) -> None:
        """Drops a pending timer for the document and clears its diagnostics."""
        if self._scheduled_document_id == document_id:
            self.cancel()
        self._analyzer.forget(document_id)

    # -- Timer -------------------------------------------------------------------

    def schedule(self, document_id: str) -> None:
        """Cancels any pending timer and arms a new one for document_id."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._scheduled_document_id = document_id
        self._timer = loop.call_later(self._delay, self._fire, document_id)

    def cancel(self) -> None:
        """Cancels the pending timer, if any. In-flight passes keep running."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._scheduled_document_id = None

    def _fire(self, document_id: str) -> None:
        self._timer = None
        self._scheduled_document_id = None
        self._start(document_id)

    def _start(self, document_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._run(document_id))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Scheduled analysis crashed", exc_info=task.exception(),
            )

    async def _run(self, document_id: str) -> None:
        # Re-read: the pass must see the text as it is now.
        document = self._workspace.get_document(document_id)
        if document is None:
            logger.debug("Document %s closed before analysis", document_id)
            return
        await self._analyzer.analyze_document(document)

    # -- Lifecycle ---------------------------------------------------------------

    async def drain(self) -> None:
        """Waits for every analysis pass started so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancels the timer and every running pass."""
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
