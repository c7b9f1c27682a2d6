import asyncio
import uuid

from app.services.realtime import ConnectionManager


class FakeSocket:
    def __init__(self, broken=False):
        self.frames = []
        self.broken = broken
        self.accepted = False
        self.closed = False

    async def accept(self):
        self.accepted = True

    async def send_json(self, frame):
        if self.broken:
            raise RuntimeError("connection reset")
        self.frames.append(frame)

    async def close(self):
        self.closed = True


async def _settle():
    for _ in range(3):
        await asyncio.sleep(0)


def test_room_emit_reaches_members_only():
    async def scenario():
        manager = ConnectionManager()
        inside, outside = FakeSocket(), FakeSocket()
        await manager.connect(inside)
        await manager.connect(outside)

        room = uuid.uuid4()
        await manager.handle(inside, {"event": "join-room", "room": str(room)})
        manager.emit("new-message", {"text": "on my way", "room": room}, room=room)
        await _settle()
        return inside, outside

    inside, outside = asyncio.run(scenario())

    assert inside.accepted
    assert inside.frames[0]["event"] == "new-message"
    assert inside.frames[0]["data"]["text"] == "on my way"
    assert outside.frames == []


def test_broadcast_and_failed_send_drops_socket():
    async def scenario():
        manager = ConnectionManager()
        good, bad = FakeSocket(), FakeSocket(broken=True)
        await manager.connect(good)
        await manager.connect(bad)
        manager.join("room-1", bad)

        manager.emit("emergency-status-updated", {"status": "en_route"})
        await _settle()
        return manager, good, bad

    manager, good, bad = asyncio.run(scenario())

    assert good.frames == [{"event": "emergency-status-updated", "data": {"status": "en_route"}}]
    assert bad not in manager.connections
    assert "room-1" not in manager.rooms


def test_location_relay_excludes_sender():
    async def scenario():
        manager = ConnectionManager()
        driver, watcher = FakeSocket(), FakeSocket()
        await manager.connect(driver)
        await manager.connect(watcher)

        await manager.handle(driver, {"event": "update-ambulance-location", "data": {"lat": -15.8, "lng": 35.0}})
        await _settle()
        return driver, watcher

    driver, watcher = asyncio.run(scenario())

    assert driver.frames == []
    assert watcher.frames[0]["event"] == "ambulance-location-updated"


def test_leave_and_unknown_events():
    async def scenario():
        manager = ConnectionManager()
        socket = FakeSocket()
        await manager.connect(socket)
        await manager.handle(socket, {"event": "join", "data": {"room_id": "abc"}})
        joined = "abc" in manager.rooms
        await manager.handle(socket, {"event": "leave-room", "room": "abc"})
        await manager.handle(socket, {"event": "self-destruct"})
        await manager.close()
        return manager, socket, joined

    manager, socket, joined = asyncio.run(scenario())

    assert joined
    assert manager.rooms == {}
    assert socket.closed
    assert manager.connections == []


def test_emit_without_loop_is_dropped():
    manager = ConnectionManager()
    manager.connections.append(FakeSocket())
    # no running or bound loop: must not raise
    manager.emit("new-emergency", {"id": 1})


def test_scheduled_sends_are_tracked_until_done():
    async def scenario():
        manager = ConnectionManager()
        socket = FakeSocket()
        await manager.connect(socket)
        manager.emit("new-emergency", {"id": 7})
        pending = len(manager._tasks)
        await _settle()
        return manager, socket, pending

    manager, socket, pending = asyncio.run(scenario())

    assert pending == 1
    assert manager._tasks == set()
    assert socket.frames[0]["event"] == "new-emergency"


def test_room_given_as_plain_string_data():
    async def scenario():
        manager = ConnectionManager()
        socket = FakeSocket()
        await manager.connect(socket)
        room = str(uuid.uuid4())
        await manager.handle(socket, {"event": "join-room", "data": room})
        joined = set(manager.rooms)
        await manager.handle(socket, {"event": "leave-room", "data": room})
        return manager, room, joined

    manager, room, joined = asyncio.run(scenario())

    assert joined == {room}
    assert manager.rooms == {}
