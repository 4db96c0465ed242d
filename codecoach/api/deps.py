"""Shared FastAPI dependencies — the assistant's service graph and its injection.

Every service is built exactly once, by build_services(), and held in a
module-level singleton. Route handlers reach them through Depends(),
never by importing the singleton directly. There must be one orchestrator
per process: the request-rate floor only holds if every model call goes
through the same instance.

EDITOR: To connect a real editor, pass real Workspace / DiagnosticSink /
Notifier / ExerciseCatalog implementations to build_services(). The get_*
functions and all route handlers stay unchanged.

Tier 2 service module: imports from hooks/* (Tier 2), hooks/interfaces
(Tier 1), ai/* (Tier 2), schemas (Tier 1), config (Tier 2).

Usage:
    from codecoach.api.deps import get_services

    @router.get("/something")
    async def do_thing(services: Services = Depends(get_services)): ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException

from codecoach.ai.analysis import CodeAnalyzer
from codecoach.ai.completion import CompletionService
from codecoach.ai.guidance import ProgressiveGuide
from codecoach.ai.orchestrator import RequestOrchestrator
from codecoach.ai.providers.base import AIProvider
from codecoach.ai.quickfix import QuickFixService
from codecoach.ai.scheduler import AnalysisScheduler
from codecoach.config import Settings
from codecoach.hooks.diagnostics import InMemoryDiagnosticCollection
from codecoach.hooks.exercises import InMemoryExerciseCatalog
from codecoach.hooks.notifier import LoggingNotifier
from codecoach.hooks.workspace import InMemoryWorkspace
from codecoach.schemas import ApiError, ApiResponse

logger = logging.getLogger("codecoach")

CONNECTION_TEST_TIMEOUT_S = 5.0


# ---------------------------------------------------------------------------
# Service graph
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Everything the routes need, wired together around one orchestrator."""

    settings: Settings
    provider: AIProvider
    orchestrator: RequestOrchestrator
    workspace: InMemoryWorkspace
    diagnostics: InMemoryDiagnosticCollection
    notifier: LoggingNotifier
    catalog: InMemoryExerciseCatalog
    analyzer: CodeAnalyzer
    scheduler: AnalysisScheduler
    guide: ProgressiveGuide
    quickfix: QuickFixService
    completion: CompletionService
    learning_enabled: bool = True

    async def aclose(self) -> None:
        """Stops timers, cancels queued model calls and closes the provider."""
        await self.scheduler.aclose()
        await self.orchestrator.aclose()


def connection_test_provider(endpoint: str, api_key: str) -> AIProvider:
    """Builds a throwaway client for one connection test from the settings screen."""
    from codecoach.ai.providers.chat_completions import ChatCompletionsProvider

    return ChatCompletionsProvider(
        endpoint=endpoint, api_key=api_key, timeout_s=CONNECTION_TEST_TIMEOUT_S,
    )


def get_connection_test_provider() -> Callable[[str, str], AIProvider]:
    """Factory for connection-test clients. Tests override it to swap the transport."""
    return connection_test_provider


def create_provider(settings: Settings) -> AIProvider:
    """Builds the model client selected by AI_BACKEND.

    Raises:
        ValueError: If the backend name is not recognized.
    """
    # Local imports so the mock backend never touches the HTTP client.
    if settings.ai_backend == "http":
        from codecoach.ai.providers.chat_completions import ChatCompletionsProvider

        return ChatCompletionsProvider(
            endpoint=settings.ai_api_endpoint,
            api_key=settings.ai_api_key,
            timeout_s=settings.ai_request_timeout_s,
        )

    if settings.ai_backend == "mock":
        from codecoach.ai.providers.mock import MockProvider

        return MockProvider()

    raise ValueError(
        f"Unknown AI backend: {settings.ai_backend!r}. Expected 'http' or 'mock'."
    )


def build_services(
    settings: Settings,
    provider: AIProvider | None = None,
    notifier: LoggingNotifier | None = None,
) -> Services:
    """Wires the full service graph.

    Args:
        settings: Application settings.
        provider: Model client; built from settings if omitted.
        notifier: User-message sink; a fresh LoggingNotifier if omitted.

    Returns:
        A Services bundle sharing one orchestrator.
    """
    provider = provider if provider is not None else create_provider(settings)
    orchestrator = RequestOrchestrator(
        provider,
        min_interval_ms=settings.ai_api_min_interval_ms,
        max_attempts=settings.ai_max_attempts,
        retry_delay_ms=settings.ai_retry_delay_ms,
    )
    workspace = InMemoryWorkspace()
    diagnostics = InMemoryDiagnosticCollection()
    notifier = notifier if notifier is not None else LoggingNotifier()
    catalog = InMemoryExerciseCatalog()

    analyzer = CodeAnalyzer(orchestrator, workspace, diagnostics, notifier, settings)
    scheduler = AnalysisScheduler(analyzer, workspace, delay_ms=settings.ai_analysis_delay_ms)

    return Services(
        settings=settings,
        provider=provider,
        orchestrator=orchestrator,
        workspace=workspace,
        diagnostics=diagnostics,
        notifier=notifier,
        catalog=catalog,
        analyzer=analyzer,
        scheduler=scheduler,
        guide=ProgressiveGuide(orchestrator, settings, notifier=notifier),
        quickfix=QuickFixService(orchestrator, settings),
        completion=CompletionService(orchestrator, settings),
        learning_enabled=settings.enable_progressive_learning,
    )


# ---------------------------------------------------------------------------
# Singleton — set by create_app() in main.py at startup
# ---------------------------------------------------------------------------

_services: Services | None = None


def get_services() -> Services:
    """Returns the service graph singleton.

    Raises HTTPException(503) if the services haven't been built yet
    (startup not complete).
    """
    if _services is None:
        raise HTTPException(
            status_code=503,
            detail=ApiResponse(
                ok=False,
                error=ApiError(
                    code="SERVICE_UNAVAILABLE",
                    message="Assistant services are not yet available. Server is starting up.",
                ),
            ).model_dump(),
        )
    return _services
