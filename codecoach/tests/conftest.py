"""Shared test fixtures for the CodeCoach assistant.

Factory-pattern fixtures that return callables accepting **overrides.
Every test module imports from here — no reinventing test scaffolding.

Fixtures:
    mock_provider: Factory for MockProvider instances
    make_settings: Factory for Settings with fast, test-friendly timings
    make_document: Factory for TextDocument snapshots
    make_diagnostic: Factory for AI DiagnosticRecords
    make_orchestrator: Factory for RequestOrchestrators (closed after the test)
    make_services: Factory for a wired Services graph (closed after the test)
"""

from uuid import uuid4

import pytest
import pytest_asyncio

from codecoach.ai.orchestrator import RequestOrchestrator
from codecoach.ai.providers.mock import MockProvider
from codecoach.config import Settings
from codecoach.schemas import DiagnosticRecord, TextDocument, TextRange

SAMPLE_CPP = """#include <iostream>
using namespace std;
int main() {
    int* p = nullptr;
    cout << *p << endl;
    return 0;
}"""


# ---------------------------------------------------------------------------
# MockProvider factory
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_provider():
    """Returns a factory function for creating MockProvider instances."""

    def _make(**kwargs) -> MockProvider:
        return MockProvider(**kwargs)

    return _make


# ---------------------------------------------------------------------------
# Settings factory
# ---------------------------------------------------------------------------


def build_settings(**overrides) -> Settings:
    """Settings with every timing shrunk to test scale. Override any field."""
    defaults = {
        "app_env": "test",
        "app_port": 8000,
        "log_level": "info",
        "cors_origins": ["http://localhost:3000"],
        "ai_backend": "http",
        "ai_api_endpoint": "https://api.example.test/v1/chat/completions",
        "ai_api_key": "test-key",
        "ai_model_name": "Qwen/Qwen2.5-Coder-7B-Instruct",
        "ai_request_timeout_s": 5.0,
        "ai_api_min_interval_ms": 0,
        "ai_max_attempts": 3,
        "ai_retry_delay_ms": 0,
        "ai_analysis_delay_ms": 30,
        "ai_max_file_size_kb": 100,
        "analysis_languages": ["cpp", "c"],
        "enable_ai_analysis": True,
        "enable_ai_code_completion": True,
        "enable_tab_completion": True,
        "enable_progressive_learning": True,
        "progressive_learning_max_tokens": 3000,
        "completion_max_items": 5,
        "completion_trigger_chars": 3,
    }
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture
def make_settings():
    """Returns a factory function for creating Settings instances."""
    return build_settings


# ---------------------------------------------------------------------------
# Document / diagnostic factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_document():
    """Returns a factory function for creating TextDocument snapshots.

    Defaults produce a small C++ file with a unique id.
    """

    def _make(**overrides) -> TextDocument:
        defaults = {
            "document_id": f"file:///tmp/{uuid4().hex[:8]}.cpp",
            "language_id": "cpp",
            "version": 1,
            "text": SAMPLE_CPP,
        }
        defaults.update(overrides)
        return TextDocument(**defaults)

    return _make


@pytest.fixture
def make_diagnostic():
    """Returns a factory function for creating AI DiagnosticRecords.

    Defaults describe a downgraded null-dereference finding on line 4
    (0-based) of SAMPLE_CPP, with a suggestion.
    """

    def _make(**overrides) -> DiagnosticRecord:
        line = overrides.pop("line", 4)
        suggestion = overrides.pop("suggestion", "在解引用前检查指针是否为空")
        defaults = {
            "line": line,
            "range": TextRange(
                start_line=line, start_character=0, end_line=line, end_character=22,
            ),
            "message": "[AI判定: error] 解引用空指针",
            "raw_severity": "error",
            "effective_severity": "warning",
            "suggestion": suggestion,
            "related_information": [f"建议: {suggestion}"] if suggestion else [],
            "downgraded": True,
        }
        defaults.update(overrides)
        return DiagnosticRecord(**defaults)

    return _make


# ---------------------------------------------------------------------------
# Orchestrator / services factories (async teardown)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_orchestrator():
    """Returns a factory for RequestOrchestrators; all are closed on teardown.

    Defaults: no rate floor and no retry delay, so tests only wait where
    they ask to.
    """
    created: list[RequestOrchestrator] = []

    def _make(provider=None, **overrides) -> RequestOrchestrator:
        options = {"min_interval_ms": 0, "max_attempts": 3, "retry_delay_ms": 0}
        options.update(overrides)
        orchestrator = RequestOrchestrator(provider or MockProvider(), **options)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        await orchestrator.aclose()


@pytest_asyncio.fixture
async def make_services():
    """Returns a factory for wired Services graphs; all are closed on teardown."""
    from codecoach.api.deps import build_services

    created = []

    def _make(provider=None, settings: Settings | None = None, **setting_overrides):
        resolved = settings or build_settings(**setting_overrides)
        services = build_services(resolved, provider=provider or MockProvider())
        created.append(services)
        return services

    yield _make

    for services in created:
        await services.aclose()

