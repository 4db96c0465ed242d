"""Hook interfaces — abstract base classes for the editor-side collaborators.

The assistant never touches editor internals. Documents, the diagnostic
collection, notifications, the exercise catalog and the guidance panel
all live behind these contracts. Each one has an in-memory stub that lets
the assistant run end-to-end (and be tested) without an editor attached;
the editor bridge supplies real implementations.

Tier 1 leaf module: imports only from abc, typing (stdlib) and
codecoach.schemas (also Tier 1). No project services, no orchestration.

EDITOR: To connect a real editor, subclass the relevant ABC and implement
every abstract method. Python will raise TypeError at instantiation if
any method is missing.

Usage:
    from codecoach.hooks.interfaces import Workspace, DiagnosticSink, Notifier
"""

from abc import ABC, abstractmethod
from typing import Any

from codecoach.schemas import DiagnosticRecord, TextDocument


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class Workspace(ABC):
    """Read access to the documents currently open in the editor.

    The scheduler resolves documents through this interface at analysis
    time, never from a stored snapshot, so that a debounced analysis
    always sees the latest text.
    """

    @abstractmethod
    def get_document(self, document_id: str) -> TextDocument | None:
        """Returns the current snapshot of a document.

        Args:
            document_id: The editor's document identifier (usually a URI).

        Returns:
            The latest TextDocument, or None if the document is closed.
        """
        ...


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class DiagnosticSink(ABC):
    """The editor's diagnostic collection for AI findings.

    Replace-the-set semantics: set() swaps the whole list for a document,
    it never merges with what was there before.
    """

    @abstractmethod
    def set(self, document_id: str, diagnostics: list[DiagnosticRecord]) -> None:
        """Replaces all published diagnostics for a document."""
        ...

    @abstractmethod
    def delete(self, document_id: str) -> None:
        """Removes every published diagnostic for a document. Idempotent."""
        ...

    @abstractmethod
    def get(self, document_id: str) -> list[DiagnosticRecord]:
        """Returns the diagnostics currently published for a document."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Removes every published diagnostic for every document."""
        ...


# ---------------------------------------------------------------------------
# User notifications
# ---------------------------------------------------------------------------


class Notifier(ABC):
    """Toast-style messages to the user.

    Only the callers of the orchestrator talk to the user; the orchestrator
    itself never does.
    """

    @abstractmethod
    async def show_info(self, message: str) -> None:
        """Shows an informational message."""
        ...

    @abstractmethod
    async def show_warning(self, message: str, *actions: str) -> str | None:
        """Shows a warning with optional action buttons.

        Returns:
            The label of the action the user picked, or None if dismissed.
        """
        ...

    @abstractmethod
    async def show_error(self, message: str) -> None:
        """Shows an error message."""
        ...

    @abstractmethod
    async def open_settings(self, setting_key: str) -> None:
        """Opens the editor settings focused on one setting."""
        ...


# ---------------------------------------------------------------------------
# Exercises
# ---------------------------------------------------------------------------


class ExerciseCatalog(ABC):
    """Problem statements for exercises, owned by the exercise server."""

    @abstractmethod
    async def get_problem_text(self, exercise_id: str) -> str | None:
        """Returns the problem description, or None if the exercise is unknown."""
        ...


# ---------------------------------------------------------------------------
# Guidance panel
# ---------------------------------------------------------------------------


class PanelChannel(ABC):
    """Outbound half of the guidance panel (webview) message channel."""

    @abstractmethod
    async def post_message(self, message: dict[str, Any]) -> None:
        """Sends one JSON-serialisable message to the panel."""
        ...
