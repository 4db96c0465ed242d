"""In-memory exercise catalog — development stub for ExerciseCatalog.

The real catalog lives on the exercise server. The editor registers the
problem text of the exercise the user opened (PUT /exercises/{id}) and the
guidance panel looks it up by id.

Tier 2 service module: imports from codecoach.hooks.interfaces (Tier 1).
"""

from codecoach.hooks.interfaces import ExerciseCatalog


class InMemoryExerciseCatalog(ExerciseCatalog):
    """STUB — dict of exercise_id → problem text."""

    def __init__(self, problems: dict[str, str] | None = None) -> None:
        self._problems: dict[str, str] = dict(problems or {})

    async def get_problem_text(self, exercise_id: str) -> str | None:
        return self._problems.get(exercise_id)

    def register(self, exercise_id: str, problem_text: str) -> None:
        """Stores (or replaces) an exercise's problem text."""
        self._problems[exercise_id] = problem_text
