"""In-memory workspace — development stub for Workspace.

Dict-backed document store. The HTTP bridge pushes editor changes into it
(open/update/close) and the scheduler reads the latest snapshot from it.
Versions auto-increment on every update unless the editor supplies its own.

EDITOR: A real integration can keep using this stub and push changes over
the bridge, or subclass Workspace and read the editor's buffers directly.

Tier 2 service module: imports from codecoach.hooks.interfaces (Tier 1)
and codecoach.schemas (Tier 1).

Usage:
    from codecoach.hooks.workspace import InMemoryWorkspace

    workspace = InMemoryWorkspace()
    workspace.open("file:///a.cpp", "cpp", "int main() {}")
    workspace.get_document("file:///a.cpp")
"""

from codecoach.hooks.interfaces import Workspace
from codecoach.schemas import TextDocument


class InMemoryWorkspace(Workspace):
    """STUB — dict-backed document snapshots, keyed by document_id."""

    def __init__(self) -> None:
        """Initialises an empty workspace."""
        self._documents: dict[str, TextDocument] = {}

    def get_document(self, document_id: str) -> TextDocument | None:
        return self._documents.get(document_id)

    def open(
        self, document_id: str, language_id: str, text: str, version: int = 1
    ) -> TextDocument:
        """Registers (or replaces) a document.

        Returns:
            The stored snapshot.
        """
        document = TextDocument(
            document_id=document_id, language_id=language_id, version=version, text=text,
        )
        self._documents[document_id] = document
        return document

    def update(
        self,
        document_id: str,
        text: str,
        language_id: str | None = None,
        version: int | None = None,
    ) -> TextDocument:
        """Applies an edit. Opens the document if it is not known yet.

        Args:
            document_id: The document identifier.
            text: Full new text.
            language_id: New language id (keeps the old one if None).
            version: Editor-supplied version; previous + 1 if None.

        Returns:
            The new snapshot.

        Raises:
            ValueError: If an unknown document is updated without a language id.
        """
        current = self._documents.get(document_id)
        if current is None:
            if language_id is None:
                raise ValueError(f"Unknown document {document_id!r} needs a language id")
            return self.open(document_id, language_id, text, version or 1)

        document = TextDocument(
            document_id=document_id,
            language_id=language_id or current.language_id,
            version=version if version is not None else current.version + 1,
            text=text,
        )
        self._documents[document_id] = document
        return document

    def close(self, document_id: str) -> None:
        """Forgets a document. No-op if not open (idempotent)."""
        self._documents.pop(document_id, None)
