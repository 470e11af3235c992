import asyncio
import random
import string
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from constants import PEER_ID_LENGTH
from logging_config import get_logger

if TYPE_CHECKING:
    from connection import Connection

logger = get_logger(__name__)

PEER_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_peer_id(length: int = PEER_ID_LENGTH) -> str:
    return ''.join(random.choices(PEER_ID_ALPHABET, k=length))


@dataclass
class Membership:
    connection: "Connection"
    room_id: str
    peer_id: str


class MembershipRegistry:
    """Which connection sits in which room, and under which peer id.

    A room exists only while it has members; its key is dropped from the
    index as soon as the last member leaves.

    Methods are synchronous. Compound operations (join or leave plus the
    userCount broadcast) must hold ``lock`` for their whole duration.
    """

    def __init__(self, peer_id_length: int = PEER_ID_LENGTH):
        self.lock = asyncio.Lock()
        self.peer_id_length = peer_id_length
        # Format: {connection_id: Membership}
        self._by_connection: Dict[str, Membership] = {}
        # Format: {peer_id: Membership}
        self._by_peer: Dict[str, Membership] = {}
        # Format: {room_id: {connection_id: Connection}}, insertion ordered
        self._rooms: Dict[str, Dict[str, "Connection"]] = {}

    def _new_peer_id(self) -> str:
        peer_id = generate_peer_id(self.peer_id_length)
        while peer_id in self._by_peer:
            logger.debug(f"Peer id collision on {peer_id}, drawing again")
            peer_id = generate_peer_id(self.peer_id_length)
        return peer_id

    def join(self, connection: "Connection", room_id: str) -> str:
        """Record a membership and return the freshly assigned peer id."""
        if connection.connection_id in self._by_connection:
            raise ValueError(f"Connection {connection.connection_id} already joined a room")

        peer_id = self._new_peer_id()
        membership = Membership(connection=connection, room_id=room_id, peer_id=peer_id)
        self._by_connection[connection.connection_id] = membership
        self._by_peer[peer_id] = membership
        self._rooms.setdefault(room_id, {})[connection.connection_id] = connection

        connection.room_id = room_id
        connection.peer_id = peer_id
        logger.debug(f"Connection {connection.connection_id} joined room {room_id} as {peer_id} (members: {self.count(room_id)})")
        return peer_id

    def leave(self, connection: "Connection") -> Optional[Membership]:
        """Remove the membership of ``connection``. Returns the removed record, or None if it never joined."""
        membership = self._by_connection.pop(connection.connection_id, None)
        if membership is None:
            return None

        self._by_peer.pop(membership.peer_id, None)
        members = self._rooms.get(membership.room_id)
        if members is not None:
            members.pop(connection.connection_id, None)
            if not members:
                del self._rooms[membership.room_id]
                logger.debug(f"Room {membership.room_id} is empty, removed")

        connection.room_id = None
        connection.peer_id = None
        logger.debug(f"Connection {connection.connection_id} ({membership.peer_id}) left room {membership.room_id}")
        return membership

    def members_of(self, room_id: str) -> List["Connection"]:
        return list(self._rooms.get(room_id, {}).values())

    def count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, {}))

    def membership_of(self, connection: "Connection") -> Optional[Membership]:
        return self._by_connection.get(connection.connection_id)

    def connection_for(self, peer_id: str) -> Optional["Connection"]:
        membership = self._by_peer.get(peer_id)
        return membership.connection if membership else None

    def find(self, predicate: Callable[[Membership], bool]) -> Optional["Connection"]:
        for membership in self._by_connection.values():
            if predicate(membership):
                return membership.connection
        return None

    def rooms(self) -> List[str]:
        return list(self._rooms)

    def clear(self):
        for membership in self._by_connection.values():
            membership.connection.room_id = None
            membership.connection.peer_id = None
        self._by_connection.clear()
        self._by_peer.clear()
        self._rooms.clear()

    def __len__(self) -> int:
        return len(self._by_connection)
