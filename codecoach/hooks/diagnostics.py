"""In-memory diagnostic collection — development stub for DiagnosticSink.

Keeps the published AI diagnostics per document so the HTTP bridge can
serve them and tests can assert on them. Replace-the-set semantics, like
the editor's own diagnostic collection.

Tier 2 service module: imports from codecoach.hooks.interfaces (Tier 1)
and codecoach.schemas (Tier 1).
"""

from codecoach.hooks.interfaces import DiagnosticSink
from codecoach.schemas import DiagnosticRecord


class InMemoryDiagnosticCollection(DiagnosticSink):
    """STUB — dict of document_id → published diagnostics."""

    def __init__(self) -> None:
        self._diagnostics: dict[str, list[DiagnosticRecord]] = {}

    def set(self, document_id: str, diagnostics: list[DiagnosticRecord]) -> None:
        self._diagnostics[document_id] = list(diagnostics)

    def delete(self, document_id: str) -> None:
        self._diagnostics.pop(document_id, None)

    def get(self, document_id: str) -> list[DiagnosticRecord]:
        return list(self._diagnostics.get(document_id, []))

    def clear(self) -> None:
        self._diagnostics.clear()

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._diagnostics
