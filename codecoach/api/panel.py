"""Guidance panel channel — WebSocket transport for the panel protocol.

One WebSocket per open panel. Each inbound frame is one JSON message
(binary frames are read as UTF-8 text); the GuidancePanelController
answers through a PanelChannel that writes JSON frames back on the same
socket. A frame that is not JSON gets an error message, like any other
invalid message, and the socket stays open.

Tier 3 orchestration module: imports from deps (Tier 2), panel (Tier 2),
hooks/interfaces (Tier 1), schemas (Tier 1).
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from codecoach.api.deps import Services, get_services
from codecoach.hooks.interfaces import PanelChannel
from codecoach.panel import GuidancePanelController
from codecoach.schemas import PanelErrorMessage

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketPanelChannel(PanelChannel):
    """PanelChannel backed by an accepted WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def post_message(self, message: dict[str, Any]) -> None:
        await self._websocket.send_json(message)


def _frame_text(received: dict[str, Any]) -> str:
    """Text of a received frame. Binary frames are decoded as UTF-8."""
    text = received.get("text")
    if text is not None:
        return text
    return (received.get("bytes") or b"").decode("utf-8", "replace")


@router.websocket("/panel")
async def panel_socket(
    websocket: WebSocket,
    services: Services = Depends(get_services),
) -> None:
    await websocket.accept()
    channel = WebSocketPanelChannel(websocket)
    controller = GuidancePanelController(
        services.guide,
        services.catalog,
        channel,
        enabled=lambda: services.learning_enabled,
    )
    logger.info("Guidance panel connected")

    try:
        while True:
            received = await websocket.receive()
            if received["type"] == "websocket.disconnect":
                break
            try:
                message = json.loads(_frame_text(received))
            except json.JSONDecodeError:
                await channel.post_message(
                    PanelErrorMessage(message="无效的面板消息: not JSON").to_wire()
                )
                continue
            await controller.handle_message(message)
    except WebSocketDisconnect:
        logger.debug("Guidance panel closed while a reply was being sent")
    logger.info("Guidance panel disconnected")
