# src/askloop/connectors/matrix_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time

from nio import AsyncClient, MatrixRoom, RoomMessageText

from ..cli.commands import handle_line
from ..core.state import AppState
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)


def _ms_now() -> int:
    return int(time.time() * 1000)


def _room_allowlist(settings_rooms: list[str]) -> set[str] | None:
    rooms = [r.strip() for r in (settings_rooms or []) if str(r).strip()]
    return set(rooms) if rooms else None


async def _send_text(client: AsyncClient, *, room_id: str, text: str) -> None:
    await client.room_send(
        room_id=room_id,
        message_type="m.room.message",
        content={"msgtype": "m.text", "body": text},
        ignore_unverified_devices=True,
    )


class MatrixMessenger:
    """
    Room transport for task deliveries.

    The client is attached once the connector has logged in; until then (or after
    shutdown) sends fail and the worker logs the delivery failure.
    """

    def __init__(self) -> None:
        self.client: AsyncClient | None = None

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        if self.client is None:
            raise RuntimeError("Matrix client is not connected")
        if not room_id:
            raise ValueError("room_id is required for Matrix delivery")
        await _send_text(self.client, room_id=room_id, text=text)
        logger.info("Delivered message to room %s (user=%s).", room_id, to_user_id)


async def run_matrix_bot(state: AppState, messenger: MatrixMessenger, stop_event: asyncio.Event) -> None:
    """
    Matrix connector (async):

    init -> callbacks -> sync loop

    Only slash-commands are handled; plain messages are ignored.
    Runs until stop_event is set.
    """
    settings = state.settings
    if not settings.matrix_homeserver or not settings.matrix_user_id:
        logger.error("Matrix is enabled but not configured (homeserver/user_id).")
        return

    startup_ts = _ms_now()
    allowed_rooms = _room_allowlist(getattr(settings, "matrix_rooms", []) or [])
    logger.info("Matrix allowed_rooms=%s", allowed_rooms if allowed_rooms is not None else "ALL")

    client = await create_matrix_client(settings)
    if client is None:
        logger.error("Matrix client creation failed; connector will stop.")
        return

    messenger.client = client
    logger.info("Matrix client started (user=%s, homeserver=%s).", client.user_id, settings.matrix_homeserver)

    async def message_callback(room: MatrixRoom, event: RoomMessageText) -> None:
        # Ignore history from before startup and our own messages.
        ts = getattr(event, "server_timestamp", None)
        if ts is not None and ts <= startup_ts:
            return
        if event.sender == client.user_id:
            return
        if allowed_rooms is not None and room.room_id not in allowed_rooms:
            return

        body = (event.body or "").strip()
        if not body.startswith("/"):
            return

        logger.info("Matrix <%s> %s: %r", room.display_name, event.sender, body)

        try:
            with contextlib.suppress(Exception):
                await client.room_typing(room.room_id, typing_state=True, timeout=30000)
            reply = await handle_line(state, body, user_id=event.sender, room_id=room.room_id)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."
        finally:
            with contextlib.suppress(Exception):
                await client.room_typing(room.room_id, typing_state=False, timeout=30000)

        if not reply:
            return
        try:
            await _send_text(client, room_id=room.room_id, text=reply)
        except Exception:
            logger.exception("Failed to send command reply to %s.", room.room_id)

    client.add_event_callback(message_callback, RoomMessageText)

    sync_task: asyncio.Task | None = None
    try:
        logger.info("Matrix initial sync...")
        await client.sync(timeout=30000, full_state=True)
        logger.info("Matrix initial sync done. Joined rooms: %d", len(client.rooms))

        sync_task = asyncio.create_task(client.sync_forever(timeout=30000))
        await stop_event.wait()

    except asyncio.CancelledError:
        logger.info("Matrix connector cancelled.")
        raise
    except Exception:
        logger.exception("Matrix connector crashed.")
    finally:
        if sync_task is not None:
            sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await sync_task

        messenger.client = None
        with contextlib.suppress(Exception):
            await client.close()

        logger.info("Matrix connector stopped.")
