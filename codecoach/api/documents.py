"""Document API routes — the editor bridge for analysis, fixes and completions.

The editor forwards its document events here:
- change / activation / close events drive the debounced analysis scheduler
- a manual "analyze" runs a forced pass and returns its diagnostics
- fix / help / code-actions / completions / inline-completion serve the
  editor's quick-fix, completion and tab-completion providers

Document ids are editor URIs and may contain slashes, hence the path
converter on every route.

Also exposes settings_router for the runtime feature switches and the
endpoint connection test.

Tier 3 orchestration module: imports from deps (Tier 2), ai/* (Tier 2),
schemas (Tier 1).
"""

import logging
from collections.abc import Callable
from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from codecoach.ai import prompts
from codecoach.ai.providers.base import AIProvider, ConfigurationError, ModelCallError
from codecoach.ai.quickfix import code_actions, suggestion_of
from codecoach.api.deps import Services, get_connection_test_provider, get_services
from codecoach.models import CALL_CONNECTION_TEST, resolve_call
from codecoach.schemas import ApiError, ApiResponse, DiagnosticRecord, TextDocument

logger = logging.getLogger(__name__)

router = APIRouter()
settings_router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies (API-boundary types, local to this module)
# ---------------------------------------------------------------------------


class DocumentChangedRequest(BaseModel):
    """Request body for POST /documents/{id}/changed."""

    language_id: str
    version: int | None = None
    text: str


class FixRequest(BaseModel):
    """Request body for POST /documents/{id}/fix."""

    diagnostic: DiagnosticRecord
    suggestion: str | None = None


class HelpRequest(BaseModel):
    """Request body for POST /documents/{id}/help."""

    diagnostic: DiagnosticRecord


class CodeActionsRequest(BaseModel):
    """Request body for POST /documents/{id}/code-actions.

    Without diagnostics, the ones currently published for the document
    are used.
    """

    diagnostics: list[DiagnosticRecord] | None = None


class CompletionRequest(BaseModel):
    """Request body for POST /documents/{id}/completions."""

    line: int = Field(ge=0)
    character: int = Field(ge=0)


class ConnectionTestRequest(BaseModel):
    """Request body for POST /settings/test-connection.

    Omitted fields fall back to the running configuration, so an empty body
    tests the settings the assistant is using.
    """

    endpoint: str | None = None
    api_key: str | None = None
    model_name: str | None = None


class TogglesRequest(BaseModel):
    """Request body for POST /settings/toggles. Omitted switches stay as they are."""

    analysis: bool | None = None
    completion: bool | None = None
    tab: bool | None = None
    learning: bool | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ApiResponse(ok=False, error=ApiError(code=code, message=message)).model_dump(),
    )


def _get_document_or_404(document_id: str, services: Services) -> TextDocument:
    """Resolves an open document or raises 404 with DOCUMENT_NOT_FOUND."""
    document = services.workspace.get_document(document_id)
    if document is None:
        raise _error(404, "DOCUMENT_NOT_FOUND", f"Document is not open: {document_id}")
    return document


def _model_call_failed(exc: ModelCallError) -> HTTPException:
    """Maps a terminal model-call failure to an API error."""
    if isinstance(exc, ConfigurationError):
        return _error(503, "AI_NOT_CONFIGURED", str(exc))
    return _error(502, "AI_REQUEST_FAILED", str(exc))


def _dump(models: list[BaseModel]) -> list[dict]:
    return [model.model_dump(mode="json") for model in models]


# ---------------------------------------------------------------------------
# Document events
# ---------------------------------------------------------------------------


@router.post("/{document_id:path}/changed")
async def document_changed(
    document_id: str,
    body: DocumentChangedRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Stores the new text and (re)arms the debounced analysis."""
    document = services.workspace.update(
        document_id, body.text, language_id=body.language_id, version=body.version,
    )
    services.scheduler.on_document_changed(document)
    return ApiResponse(
        ok=True,
        data={
            "document_id": document.document_id,
            "version": document.version,
            "scheduled": services.scheduler.pending_document_id == document.document_id,
        },
    ).model_dump()


@router.post("/{document_id:path}/activated")
async def document_activated(
    document_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """Active-editor change: analyses now if the document changed since last pass."""
    document = _get_document_or_404(document_id, services)
    services.scheduler.on_active_editor_changed(document)
    return ApiResponse(
        ok=True, data={"document_id": document.document_id, "version": document.version},
    ).model_dump()


@router.post("/{document_id:path}/analyze")
async def analyze_document(
    document_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """Manual analysis: bypasses the feature switch and the size limit."""
    document = _get_document_or_404(document_id, services)
    diagnostics = await services.analyzer.analyze_document(document, force=True)
    return ApiResponse(ok=True, data={"diagnostics": _dump(diagnostics)}).model_dump()


@router.get("/{document_id:path}/diagnostics")
async def get_diagnostics(
    document_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """Diagnostics currently published for a document (empty if none)."""
    diagnostics = services.diagnostics.get(document_id)
    return ApiResponse(ok=True, data={"diagnostics": _dump(diagnostics)}).model_dump()


@router.delete("/{document_id:path}")
async def close_document(
    document_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """Document closed: drops pending work and clears its diagnostics."""
    services.workspace.close(document_id)
    services.scheduler.on_document_closed(document_id)
    return ApiResponse(ok=True, data={"document_id": document_id}).model_dump()


# ---------------------------------------------------------------------------
# Quick fixes and help
# ---------------------------------------------------------------------------


@router.post("/{document_id:path}/code-actions")
async def get_code_actions(
    document_id: str,
    body: CodeActionsRequest,
    services: Services = Depends(get_services),
) -> dict:
    diagnostics = body.diagnostics
    if diagnostics is None:
        diagnostics = services.diagnostics.get(document_id)
    return ApiResponse(ok=True, data={"actions": _dump(code_actions(diagnostics))}).model_dump()


@router.post("/{document_id:path}/fix")
async def request_fix(
    document_id: str,
    body: FixRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Asks the model for a replacement of the code around a diagnostic."""
    document = _get_document_or_404(document_id, services)
    suggestion = body.suggestion or suggestion_of(body.diagnostic)
    if not suggestion:
        raise _error(422, "NO_SUGGESTION", "The diagnostic carries no suggestion to apply.")

    try:
        proposal = await services.quickfix.request_fix(document, body.diagnostic, suggestion)
    except ModelCallError as exc:
        logger.error("AI fix for %s failed: %s", document_id, exc)
        raise _model_call_failed(exc) from exc
    return ApiResponse(ok=True, data=proposal.model_dump(mode="json")).model_dump()


@router.post("/{document_id:path}/help")
async def request_help(
    document_id: str,
    body: HelpRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Asks the model for a detailed explanation of a diagnostic."""
    document = _get_document_or_404(document_id, services)
    try:
        explanation = await services.quickfix.request_help(document, body.diagnostic)
    except ModelCallError as exc:
        logger.error("AI help for %s failed: %s", document_id, exc)
        raise _model_call_failed(exc) from exc
    return ApiResponse(
        ok=True, data={"title": "AI详细帮助", "content": explanation},
    ).model_dump()


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------


@router.post("/{document_id:path}/completions")
async def get_completions(
    document_id: str,
    body: CompletionRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Completion items for a cursor position. Empty when nothing applies."""
    document = _get_document_or_404(document_id, services)
    items = await services.completion.suggest(document, body.line, body.character)
    return ApiResponse(ok=True, data={"items": _dump(items)}).model_dump()


@router.post("/{document_id:path}/inline-completion")
async def get_inline_completion(
    document_id: str,
    body: CompletionRequest,
    services: Services = Depends(get_services),
) -> dict:
    """One inline (tab) continuation for a cursor position, or null."""
    document = _get_document_or_404(document_id, services)
    completion = await services.completion.inline(document, body.line, body.character)
    return ApiResponse(ok=True, data={"completion": completion}).model_dump()


# ---------------------------------------------------------------------------
# Runtime switches
# ---------------------------------------------------------------------------


@settings_router.post("/toggles")
async def set_toggles(
    body: TogglesRequest,
    services: Services = Depends(get_services),
) -> dict:
    """Flips feature switches without a restart."""
    if body.analysis is not None:
        services.analyzer.set_enabled(body.analysis)
        if not body.analysis:
            services.scheduler.cancel()
    if body.completion is not None:
        services.completion.set_enabled(body.completion)
    if body.tab is not None:
        services.completion.set_tab_enabled(body.tab)
    if body.learning is not None:
        services.learning_enabled = body.learning

    return ApiResponse(
        ok=True,
        data={
            "analysis": services.analyzer.enabled,
            "completion": services.completion.enabled,
            "tab": services.completion.tab_enabled,
            "learning": services.learning_enabled,
        },
    ).model_dump()


@settings_router.post("/test-connection")
async def check_connection(
    body: ConnectionTestRequest,
    services: Services = Depends(get_services),
    make_provider: Callable[[str, str], AIProvider] = Depends(get_connection_test_provider),
) -> dict:
    """Sends one short request to an endpoint and reports whether it answered.

    Bypasses the orchestrator: the endpoint under test is not necessarily
    the configured one, and the user is waiting on the result.
    """
    settings = services.settings
    endpoint = body.endpoint if body.endpoint is not None else settings.ai_api_endpoint
    api_key = body.api_key if body.api_key is not None else settings.ai_api_key
    model_config = replace(
        resolve_call(CALL_CONNECTION_TEST, settings),
        model_id=body.model_name or settings.ai_model_name,
    )

    provider = make_provider(endpoint.strip(), api_key.strip())
    try:
        await provider.complete(
            system_prompt=prompts.CONNECTION_TEST_SYSTEM_PROMPT,
            user_prompt=prompts.CONNECTION_TEST_PROMPT,
            model_config=model_config,
        )
    except ModelCallError as exc:
        logger.info("Connection test against %s failed: %s", endpoint, exc)
        return ApiResponse(ok=True, data={"success": False, "error": str(exc)}).model_dump()
    finally:
        await provider.aclose()

    logger.info("Connection test against %s succeeded", endpoint)
    return ApiResponse(ok=True, data={"success": True, "error": None}).model_dump()
