# src/askloop/connectors/routing.py

from __future__ import annotations

import logging

from ..core.ports import OutboundMessenger

logger = logging.getLogger(__name__)


class RoutingMessenger:
    """
    Picks a transport per message.

    Tasks created from a chat room carry that room_id and go back through the room
    transport (Matrix); tasks without a room (console) go to the fallback.
    """

    def __init__(self, fallback: OutboundMessenger, rooms: OutboundMessenger | None = None) -> None:
        self._fallback = fallback
        self._rooms = rooms

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        if room_id and self._rooms is not None:
            await self._rooms.send_text(text=text, room_id=room_id, to_user_id=to_user_id)
            return
        if room_id:
            logger.warning("No room transport for room %s; delivering to console", room_id)
        await self._fallback.send_text(text=text, room_id=room_id, to_user_id=to_user_id)
