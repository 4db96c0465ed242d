"""Guidance panel protocol — inbound panel commands to outbound panel messages.

The panel (a webview on the editor side) speaks a small JSON protocol:

Inbound:
- requestGuidance{exerciseId, stage, forceRefresh}
- unlockNextStep{exerciseId}

Outbound:
- guidanceLoading{stage, loading}: true before content generation starts,
  false after it ends, whatever happened in between
- guidanceContent{stage, content}
- stepUnlocked{stage}: the newly unlocked stage, or null when all five
  stages were already unlocked
- error{message}: the inbound message could not be handled

The controller never raises for a bad message; the channel stays usable.

Tier 2 service: imports from ai/guidance (T2), hooks/interfaces (T1),
schemas (T1).
"""

import logging
from collections.abc import Callable
from typing import Any

from pydantic import TypeAdapter, ValidationError

from codecoach.ai.guidance import ProgressiveGuide
from codecoach.hooks.interfaces import ExerciseCatalog, PanelChannel
from codecoach.schemas import (
    GuidanceContentMessage,
    GuidanceLoadingMessage,
    PanelErrorMessage,
    PanelRequest,
    RequestGuidanceMessage,
    Stage,
    StepUnlockedMessage,
    UnlockNextStepMessage,
)

logger = logging.getLogger("codecoach.panel")

_panel_request_adapter: TypeAdapter[PanelRequest] = TypeAdapter(PanelRequest)

LEARNING_DISABLED_MESSAGE = "渐进式学习功能已禁用"
STAGE_LOCKED_MESSAGE = "该学习阶段尚未解锁，请先完成前面的阶段"
PROBLEM_NOT_FOUND_MESSAGE = "未找到题目描述"


def parse_panel_request(raw: Any) -> RequestGuidanceMessage | UnlockNextStepMessage:
    """Validates one inbound panel message.

    Raises:
        ValidationError: Unknown command or malformed fields.
    """
    return _panel_request_adapter.validate_python(raw)


class GuidancePanelController:
    """Handles the messages of one panel connection.

    Args:
        guide: Progressive guidance service (shared across connections).
        catalog: Source of problem statements.
        channel: Outbound half of this panel connection.
        enabled: Returns whether progressive learning is switched on;
            checked per message so runtime toggles apply to open panels.
    """

    def __init__(
        self,
        guide: ProgressiveGuide,
        catalog: ExerciseCatalog,
        channel: PanelChannel,
        enabled: Callable[[], bool] | None = None,
    ) -> None:
        self._guide = guide
        self._catalog = catalog
        self._channel = channel
        self._enabled = enabled or (lambda: True)

    async def handle_message(self, raw: Any) -> None:
        """Dispatches one inbound message. Invalid messages get an error reply."""
        try:
            message = parse_panel_request(raw)
        except ValidationError as exc:
            logger.warning("Invalid panel message: %s", exc.errors()[:1])
            await self._post(PanelErrorMessage(message=f"无效的面板消息: {_first_error(exc)}"))
            return

        if not self._enabled():
            await self._post(PanelErrorMessage(message=LEARNING_DISABLED_MESSAGE))
            return

        if isinstance(message, RequestGuidanceMessage):
            await self._request_guidance(message)
        else:
            await self._unlock_next_step(message)

    async def _request_guidance(self, message: RequestGuidanceMessage) -> None:
        stage = message.stage
        await self._post(GuidanceLoadingMessage(stage=stage, loading=True))
        try:
            content = await self._content_for(message)
            await self._post(GuidanceContentMessage(stage=stage, content=content))
        finally:
            await self._post(GuidanceLoadingMessage(stage=stage, loading=False))

    async def _content_for(self, message: RequestGuidanceMessage) -> str:
        exercise_id = message.exercise_id
        if not self._guide.is_unlocked(exercise_id, message.stage):
            return STAGE_LOCKED_MESSAGE

        problem_text = await self._catalog.get_problem_text(exercise_id)
        if not problem_text:
            logger.warning("No problem text registered for exercise %s", exercise_id)
            return f"{PROBLEM_NOT_FOUND_MESSAGE}: {exercise_id}"

        self._guide.set_current_step(exercise_id, message.stage)
        return await self._guide.get_guidance_content(
            exercise_id, problem_text, message.stage, force_refresh=message.force_refresh,
        )

    async def _unlock_next_step(self, message: UnlockNextStepMessage) -> None:
        stage: Stage | None = self._guide.unlock_next_step(message.exercise_id)
        await self._post(StepUnlockedMessage(stage=stage))

    async def _post(self, message: Any) -> None:
        await self._channel.post_message(message.to_wire())


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', '')}" if location else first.get("msg", "")
