"""Live connections, who they are, and which room they joined."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from pwa_bridge.logging_config import get_logger
from pwa_bridge.services.identity import Identity, room_key

logger = get_logger("session_registry")


class EventSink(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class LiveSession:
    connection_id: str
    sink: EventSink
    identity: Optional[Identity] = None
    joined_room: Optional[str] = None


class SessionRegistry:
    def __init__(self):
        self._sessions: dict[str, LiveSession] = {}
        self._rooms: dict[str, set[str]] = {}

    def connect(self, connection_id: str, sink: EventSink) -> LiveSession:
        session = LiveSession(connection_id=connection_id, sink=sink)
        self._sessions[connection_id] = session
        return session

    def register(self, connection_id: str, identity: Identity) -> str:
        """Bind identity to the connection and join its room. Re-init moves rooms."""
        session = self._sessions.get(connection_id)
        if session is None:
            raise KeyError(f"Unknown connection {connection_id}")

        room = room_key(identity)
        if session.joined_room and session.joined_room != room:
            self._leave(connection_id, session.joined_room)

        session.identity = identity
        session.joined_room = room
        self._rooms.setdefault(room, set()).add(connection_id)
        logger.info("Client joined room", extra={"context": {"connection_id": connection_id, "room": room}})
        return room

    def identity_of(self, connection_id: str) -> Optional[Identity]:
        session = self._sessions.get(connection_id)
        return session.identity if session else None

    def unregister(self, connection_id: str) -> None:
        session = self._sessions.pop(connection_id, None)
        if session and session.joined_room:
            self._leave(connection_id, session.joined_room)

    def _leave(self, connection_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            del self._rooms[room]

    def members(self, room: str) -> set[str]:
        return set(self._rooms.get(room, set()))

    async def broadcast(self, room: str, event: str, payload: dict) -> int:
        """Send an event to everyone in the room. Nobody listening is not an error."""
        delivered = 0
        for connection_id in self.members(room):
            session = self._sessions.get(connection_id)
            if session is None:
                continue
            try:
                await session.sink.send_json({"event": event, "data": payload})
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Dropping dead connection: {e}",
                    extra={"context": {"connection_id": connection_id, "room": room}},
                )
                self.unregister(connection_id)
        if not delivered:
            logger.debug(f"No live listeners for {event} in {room}")
        return delivered
