"""Document analysis — one AnalysisJob through the orchestrator to diagnostics.

Owns the policy around a single analysis pass:
- feature switch and file size limit (both clear published diagnostics
  without a network call; a forced analysis bypasses them)
- missing API key (actionable warning, no network call)
- job creation and supersession (one queued job per document)
- staleness (a reply for a document that changed or closed is discarded)
- publishing (replace-the-set on the diagnostic sink)

Failure policy: a terminal transport/HTTP failure keeps the diagnostics
from the last good pass and shows an error; a reply that does not parse
replaces them with an empty set and shows the parse error once.

Consumed by:
- AnalysisScheduler (debounced and activation-triggered passes)
- Documents API (forced analysis)

Tier 2 service: imports from orchestrator (T2), translator (T2),
prompts (T1), hooks/interfaces (T1), schemas (T1), config (T2).
"""

from __future__ import annotations

import logging

from codecoach.ai import prompts
from codecoach.ai.orchestrator import ModelRequest, RequestOrchestrator
from codecoach.ai.providers.base import (
    ConfigurationError,
    EndpointNotFoundError,
    JobSupersededError,
    ModelCallError,
)
from codecoach.ai.translator import translate
from codecoach.config import Settings
from codecoach.hooks.interfaces import DiagnosticSink, Notifier, Workspace
from codecoach.models import CALL_ANALYSIS, resolve_call
from codecoach.schemas import AnalysisJob, DiagnosticRecord, TextDocument

logger = logging.getLogger("codecoach.ai.analysis")

OPEN_SETTINGS_ACTION = "打开设置"
API_KEY_SETTING = "aiApiKey"
MISSING_KEY_MESSAGE = "未配置AI API密钥，无法进行代码分析"


def analysis_dedupe_key(document_id: str) -> str:
    return f"analysis:{document_id}"


class CodeAnalyzer:
    """Runs analysis passes and publishes their diagnostics.

    Args:
        orchestrator: The process-wide request orchestrator.
        workspace: Source of current document snapshots (staleness checks).
        sink: Diagnostic collection to publish into.
        notifier: User-facing messages.
        settings: Application settings.
    """

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        workspace: Workspace,
        sink: DiagnosticSink,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self._orchestrator = orchestrator
        self._workspace = workspace
        self._sink = sink
        self._notifier = notifier
        self._settings = settings
        self._enabled = settings.enable_ai_analysis
        self._languages = frozenset(settings.analysis_languages)
        self._last_versions: dict[str, int] = {}

    # -- Policy ----------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Runtime switch. Turning analysis off clears every AI diagnostic."""
        self._enabled = enabled
        if not enabled:
            self._sink.clear()
            self._last_versions.clear()
        logger.info("AI analysis %s", "enabled" if enabled else "disabled")

    def is_supported(self, language_id: str) -> bool:
        return language_id in self._languages

    def last_analyzed_version(self, document_id: str) -> int | None:
        """Version of the last pass submitted for a document, if any."""
        return self._last_versions.get(document_id)

    def forget(self, document_id: str) -> None:
        """Drops all state for a closed document and clears its diagnostics."""
        self._last_versions.pop(document_id, None)
        self._sink.delete(document_id)

    def _missing_api_key(self) -> bool:
        return self._settings.ai_backend == "http" and not self._settings.ai_api_key

    async def warn_missing_api_key(self, message: str = MISSING_KEY_MESSAGE) -> None:
        """Shows the missing-key warning with an action that opens settings."""
        choice = await self._notifier.show_warning(message, OPEN_SETTINGS_ACTION)
        if choice == OPEN_SETTINGS_ACTION:
            await self._notifier.open_settings(API_KEY_SETTING)

    # -- Analysis ----------------------------------------------------------------

    def build_job(self, document: TextDocument) -> AnalysisJob:
        return AnalysisJob(
            document_id=document.document_id,
            document_version=document.version,
            source_text=document.text,
            language_id=document.language_id,
        )

    def is_stale(self, job: AnalysisJob) -> bool:
        """True if the document closed or changed since the job was built."""
        current = self._workspace.get_document(job.document_id)
        return current is None or current.version != job.document_version

    async def analyze_document(
        self, document: TextDocument, force: bool = False
    ) -> list[DiagnosticRecord]:
        """Runs one analysis pass and publishes the result.

        Args:
            document: Snapshot to analyse.
            force: Bypass the feature switch and the size limit (manual run).

        Returns:
            The published diagnostics; empty when skipped, superseded,
            stale or failed.
        """
        document_id = document.document_id

        if not self._enabled and not force:
            self._sink.delete(document_id)
            return []

        max_kb = self._settings.ai_max_file_size_kb
        if document.size_kb > max_kb and not force:
            logger.info(
                "File size (%.2fKB) exceeds limit (%dKB), skipping AI analysis of %s",
                document.size_kb,
                max_kb,
                document_id,
            )
            self._sink.delete(document_id)
            return []

        if self._missing_api_key():
            await self.warn_missing_api_key()
            return []

        job = self.build_job(document)
        self._last_versions[document_id] = job.document_version
        request = ModelRequest(
            call_type=CALL_ANALYSIS,
            system_prompt=prompts.ANALYSIS_SYSTEM_PROMPT,
            user_prompt=prompts.build_analysis_prompt(job.source_text, job.language_id),
            model_config=resolve_call(CALL_ANALYSIS, self._settings),
            subject=document_id,
            dedupe_key=analysis_dedupe_key(document_id),
        )

        try:
            reply = await self._orchestrator.submit(request)
        except JobSupersededError:
            logger.debug("Analysis of %s v%d superseded", document_id, job.document_version)
            return []
        except ConfigurationError:
            self._forget_version(job)
            await self.warn_missing_api_key()
            return []
        except EndpointNotFoundError as exc:
            self._forget_version(job)
            await self._notifier.show_error(str(exc))
            return []
        except ModelCallError as exc:
            self._forget_version(job)
            await self._notifier.show_error(f"AI分析API调用失败: {exc}")
            return []

        if self.is_stale(job):
            logger.info(
                "Discarding analysis of %s v%d: document changed or closed",
                document_id,
                job.document_version,
            )
            return []

        result = translate(reply, document)
        if result.error is not None:
            await self._notifier.show_error(result.error)

        self._sink.set(document_id, result.diagnostics)
        logger.info(
            "Published %d AI diagnostics for %s v%d",
            len(result.diagnostics),
            document_id,
            job.document_version,
        )
        return result.diagnostics

    def _forget_version(self, job: AnalysisJob) -> None:
        """Lets a failed pass be retried when the editor is refocused."""
        if self._last_versions.get(job.document_id) == job.document_version:
            del self._last_versions[job.document_id]
