"""Progressive guidance — five unlockable tutoring stages per exercise.

Per exercise, a GuidanceProgress records which stages are unlocked and
which one the panel shows. Progress starts with only the first stage
unlocked and only ever grows, one stage at a time, in STAGE_ORDER; the
current stage can move back and forth among unlocked stages but never
ahead of them.

Stage content is generated through the orchestrator with a stage-specific
persona and prompt, then cached per (exercise, stage). A forced refresh
always regenerates and overwrites that one entry; sibling stages keep
their content. Generation failures come back as a readable message (the
panel must always render something) and are never cached.

Consumed by:
- GuidancePanelController (panel messages)
- Exercises API (progress, current step, cache invalidation)

Tier 2 service: imports from orchestrator (T2), analysis (T2), prompts (T1),
schemas (T1), config (T2), hooks.interfaces (T1), models (T1).
"""

from __future__ import annotations

import asyncio
import logging

from codecoach.ai import prompts
from codecoach.ai.analysis import API_KEY_SETTING, OPEN_SETTINGS_ACTION
from codecoach.ai.orchestrator import ModelRequest, RequestOrchestrator
from codecoach.ai.providers.base import ConfigurationError, ModelCallError
from codecoach.config import Settings
from codecoach.hooks.interfaces import Notifier
from codecoach.models import CALL_GUIDANCE, resolve_call
from codecoach.schemas import STAGE_ORDER, GuidanceProgress, Stage

logger = logging.getLogger("codecoach.ai.guidance")

GUIDANCE_FAILURE_PREFIX = "获取学习指导失败: "
GUIDANCE_MISSING_KEY_MESSAGE = "未配置AI API密钥，无法获取学习指导"


class GuidanceCache:
    """Generated stage content keyed by (exercise_id, stage).

    No eviction: size is bounded by exercises visited × five stages.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[Stage, str]] = {}

    def get(self, exercise_id: str, stage: Stage) -> str | None:
        return self._entries.get(exercise_id, {}).get(stage)

    def set(self, exercise_id: str, stage: Stage, content: str) -> None:
        self._entries.setdefault(exercise_id, {})[stage] = content

    def clear(self, exercise_id: str) -> None:
        """Drops every cached stage of one exercise."""
        self._entries.pop(exercise_id, None)

    def clear_stage(self, exercise_id: str, stage: Stage) -> None:
        """Drops one cached stage of one exercise."""
        stages = self._entries.get(exercise_id)
        if stages is not None:
            stages.pop(stage, None)

    def stages(self, exercise_id: str) -> list[Stage]:
        """Cached stages of an exercise, in stage order."""
        cached = self._entries.get(exercise_id, {})
        return [stage for stage in STAGE_ORDER if stage in cached]


class ProgressiveGuide:
    """Stage state machine plus cached content generation.

    Args:
        orchestrator: The process-wide request orchestrator.
        settings: Application settings (model name, guidance token budget).
        cache: Content cache; a fresh one if omitted.
        language: Programming language the exercises are solved in.
        notifier: Receives the missing-key warning with an open-settings
            action. Without one the failure only shows in the content.
    """

    def __init__(
        self,
        orchestrator: RequestOrchestrator,
        settings: Settings,
        cache: GuidanceCache | None = None,
        language: str = "C++",
        notifier: Notifier | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings = settings
        self._cache = cache if cache is not None else GuidanceCache()
        self._language = language
        self._notifier = notifier
        self._progress: dict[str, GuidanceProgress] = {}
        self._inflight: dict[tuple[str, Stage], asyncio.Future[str]] = {}

    @property
    def cache(self) -> GuidanceCache:
        return self._cache

    # -- State machine -------------------------------------------------------------

    def get_progress(self, exercise_id: str) -> GuidanceProgress:
        """Returns an exercise's progress, creating it on first access."""
        progress = self._progress.get(exercise_id)
        if progress is None:
            progress = GuidanceProgress(exercise_id=exercise_id)
            self._progress[exercise_id] = progress
        return progress

    def unlock_next_step(self, exercise_id: str) -> Stage | None:
        """Unlocks the next stage in order and makes it current.

        Returns:
            The newly unlocked stage, or None if all five are unlocked.
        """
        progress = self.get_progress(exercise_id)
        for stage in STAGE_ORDER:
            if stage not in progress.unlocked_stages:
                progress.unlocked_stages.append(stage)
                progress.current_stage = stage
                logger.info("Exercise %s: unlocked %s", exercise_id, stage.value)
                return stage
        return None

    def set_current_step(self, exercise_id: str, stage: Stage) -> bool:
        """Moves the current stage. Rejected (False) if the stage is locked."""
        progress = self.get_progress(exercise_id)
        if stage not in progress.unlocked_stages:
            logger.debug("Exercise %s: %s is locked", exercise_id, stage.value)
            return False
        progress.current_stage = stage
        return True

    def is_unlocked(self, exercise_id: str, stage: Stage) -> bool:
        return stage in self.get_progress(exercise_id).unlocked_stages

    # -- Content -------------------------------------------------------------------

    async def get_guidance_content(
        self,
        exercise_id: str,
        problem_text: str,
        stage: Stage,
        force_refresh: bool = False,
    ) -> str:
        """Returns the content for one stage, generating it on a cache miss.

        Concurrent non-forced requests for the same (exercise, stage) share
        one generation.

        Args:
            exercise_id: Exercise identifier (cache scope).
            problem_text: The problem statement to tutor on.
            stage: Which stage to produce.
            force_refresh: Skip the cache and overwrite the entry.

        Returns:
            Generated (or cached) content, or a failure message.
        """
        key = (exercise_id, stage)
        if not force_refresh:
            cached = self._cache.get(exercise_id, stage)
            if cached:
                logger.debug("Guidance cache hit: %s %s", exercise_id, stage.value)
                return cached
            inflight = self._inflight.get(key)
            if inflight is not None:
                return await asyncio.shield(inflight)

        generation = asyncio.ensure_future(self._generate(exercise_id, problem_text, stage))
        self._inflight[key] = generation
        try:
            return await asyncio.shield(generation)
        finally:
            if self._inflight.get(key) is generation:
                del self._inflight[key]

    async def _generate(self, exercise_id: str, problem_text: str, stage: Stage) -> str:
        request = ModelRequest(
            call_type=CALL_GUIDANCE,
            system_prompt=prompts.stage_system_role(stage, self._language),
            user_prompt=prompts.build_stage_prompt(stage, problem_text, self._language),
            model_config=resolve_call(CALL_GUIDANCE, self._settings),
            subject=exercise_id,
        )
        try:
            content = await self._orchestrator.submit(request)
        except ConfigurationError as exc:
            logger.warning("Guidance for %s skipped: %s", exercise_id, exc)
            await self._warn_missing_api_key()
            return f"{GUIDANCE_FAILURE_PREFIX}{exc}"
        except ModelCallError as exc:
            logger.error("Failed to get %s guidance for %s: %s", stage.value, exercise_id, exc)
            return f"{GUIDANCE_FAILURE_PREFIX}{exc}"
        except Exception as exc:
            logger.exception("Unexpected error generating %s guidance for %s", stage.value, exercise_id)
            return f"{GUIDANCE_FAILURE_PREFIX}{exc}"

        self._cache.set(exercise_id, stage, content)
        return content

    async def _warn_missing_api_key(self) -> None:
        if self._notifier is None:
            return
        choice = await self._notifier.show_warning(GUIDANCE_MISSING_KEY_MESSAGE, OPEN_SETTINGS_ACTION)
        if choice == OPEN_SETTINGS_ACTION:
            await self._notifier.open_settings(API_KEY_SETTING)

    def clear_cache(self, exercise_id: str) -> None:
        """Invalidates every cached stage of one exercise."""
        self._cache.clear(exercise_id)

    def clear_step_cache(self, exercise_id: str, stage: Stage) -> None:
        """Invalidates one cached stage of one exercise."""
        self._cache.clear_stage(exercise_id, stage)
