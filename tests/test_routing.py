# tests/test_routing.py

from __future__ import annotations

import pytest

from askloop.connectors.routing import RoutingMessenger

from .fakes import FakeMessenger


@pytest.mark.asyncio
async def test_room_messages_go_to_room_transport() -> None:
    console, rooms = FakeMessenger(), FakeMessenger()
    router = RoutingMessenger(console, rooms)

    await router.send_text(text="to room", room_id="!r:x", to_user_id="@u:x")
    await router.send_text(text="to console", to_user_id="owner")

    assert [m.text for m in rooms.sent] == ["to room"]
    assert [m.text for m in console.sent] == ["to console"]


@pytest.mark.asyncio
async def test_without_room_transport_everything_goes_to_fallback() -> None:
    console = FakeMessenger()
    router = RoutingMessenger(console)

    await router.send_text(text="hello", room_id="!r:x", to_user_id="@u:x")

    assert len(console.sent) == 1
    assert console.sent[0].room_id == "!r:x"
