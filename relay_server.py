"""
Room relay: membership-aware routing of chat, audio and WebRTC signaling.

The relay owns the membership registry and every open connection. Inbound
frames are validated into typed envelopes and dispatched by ``type`` to one of
three audiences: the whole room, the room minus the sender, or a single peer.
"""

from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket
from pydantic import ValidationError

from connection import Connection
from constants import SEND_QUEUE_SIZE
from logging_config import get_logger
from registry import Membership, MembershipRegistry
from schemas.envelopes import (
    CALL_SIGNAL_TYPES,
    AudioBroadcast,
    AudioBroadcastPayload,
    AudioMessage,
    CallSignalMessage,
    ChatBroadcast,
    ChatBroadcastPayload,
    ChatMessage,
    IdMessage,
    IdPayload,
    JoinMessage,
    UserCountMessage,
    UserCountPayload,
    VoiceAnswerMessage,
    VoiceAnswerRelay,
    VoiceCandidateMessage,
    VoiceCandidateRelay,
    VoiceOfferMessage,
    VoiceOfferRelay,
    parse_envelope,
)

logger = get_logger(__name__)


class RelayServer:
    def __init__(self, registry: Optional[MembershipRegistry] = None, queue_size: int = SEND_QUEUE_SIZE):
        self.registry = registry or MembershipRegistry()
        self.queue_size = queue_size
        self.connections: Dict[str, Connection] = {}

        self._handlers = {
            "join": self._on_join,
            "chat": self._on_chat,
            "audio-message": self._on_audio_message,
            "voice-offer": self._on_voice_offer,
            "voice-answer": self._on_voice_answer,
            "voice-candidate": self._on_voice_candidate,
        }
        for signal_type in CALL_SIGNAL_TYPES:
            self._handlers[signal_type] = self._on_call_signal

    # Connection lifecycle

    def open(self, websocket: WebSocket) -> Connection:
        """Wrap an accepted websocket and start its writer task."""
        connection = Connection(websocket, on_failure=self.disconnect, queue_size=self.queue_size)
        self.connections[connection.connection_id] = connection
        connection.start()
        logger.info(f"Connection {connection.connection_id} opened (open connections: {len(self.connections)})")
        return connection

    async def disconnect(self, connection: Connection):
        """Drop a connection: remove its membership, tell its former room, close the socket.

        Safe to call more than once; only the first call broadcasts.
        """
        async with self.registry.lock:
            membership = self.registry.leave(connection)
            failed = self._broadcast_user_count(membership.room_id) if membership else []
        self.connections.pop(connection.connection_id, None)
        await connection.close()

        if membership:
            logger.info(f"Peer {membership.peer_id} left room {membership.room_id} (members: {self.registry.count(membership.room_id)})")
        await self._drop(failed)

    async def shutdown(self):
        connections = list(self.connections.values())
        logger.info(f"Shutting down relay, closing {len(connections)} connections ({len(self.registry)} peers in {len(self.registry.rooms())} rooms)")
        # Memberships go first so the closing sockets trigger no userCount fan-out
        async with self.registry.lock:
            self.registry.clear()
        for connection in connections:
            await connection.close(code=1001)
        self.connections.clear()

    # Inbound

    async def handle_text(self, connection: Connection, data: str):
        """Validate and dispatch one text frame. Bad input is logged and dropped."""
        if connection.closed:
            return
        try:
            envelope = parse_envelope(data)
        except ValidationError as e:
            logger.warning(f"Dropping malformed message from connection {connection.connection_id}: {e.error_count()} validation error(s)")
            logger.debug(f"Malformed payload from {connection.connection_id}: {data[:200]!r}")
            return

        try:
            await self.dispatch(connection, envelope)
        except Exception as e:
            logger.error(f"Error handling {envelope.type} from connection {connection.connection_id}: {e}", exc_info=True)

    async def dispatch(self, connection: Connection, envelope):
        handler = self._handlers[envelope.type]
        logger.debug(f"Dispatching {envelope.type} from connection {connection.connection_id}")
        await handler(connection, envelope)

    async def join(self, connection: Connection, room_id: str) -> str:
        """Put ``connection`` in ``room_id`` and return its new peer id.

        A connection that already sits in a room is moved: its old membership
        is dropped (with a userCount to the old room) and it gets a fresh id.
        """
        failed: List[Connection] = []
        async with self.registry.lock:
            previous = self.registry.leave(connection)
            if previous:
                logger.info(f"Peer {previous.peer_id} rejoining, leaving room {previous.room_id}")
                failed += self._broadcast_user_count(previous.room_id)

            peer_id = self.registry.join(connection, room_id)
            if not connection.send(IdMessage(payload=IdPayload(sender_id=peer_id)).to_wire()):
                failed.append(connection)
            failed += self._broadcast_user_count(room_id)

        logger.info(f"Peer {peer_id} joined room {room_id} (members: {self.registry.count(room_id)}, active rooms: {len(self.registry.rooms())}, peers: {len(self.registry)})")
        await self._drop(failed)
        return peer_id

    async def _on_join(self, connection: Connection, envelope: JoinMessage):
        await self.join(connection, envelope.payload.room_id)

    async def _on_chat(self, connection: Connection, envelope: ChatMessage):
        sender = self._sender(connection, envelope.type)
        if sender is None:
            return
        message = ChatBroadcast(payload=ChatBroadcastPayload(sender_id=sender.peer_id, message=envelope.payload.message))
        await self._broadcast(sender.room_id, message.to_wire())

    async def _on_audio_message(self, connection: Connection, envelope: AudioMessage):
        sender = self._sender(connection, envelope.type)
        if sender is None:
            return
        message = AudioBroadcast(payload=AudioBroadcastPayload(sender_id=sender.peer_id, audio=envelope.payload.audio))
        await self._broadcast(sender.room_id, message.to_wire())

    async def _on_voice_offer(self, connection: Connection, envelope: VoiceOfferMessage):
        sender = self._sender(connection, envelope.type)
        if sender is None:
            return
        message = VoiceOfferRelay(offer=envelope.offer, from_=sender.peer_id)
        await self._broadcast(sender.room_id, message.to_wire(), exclude=connection)

    async def _on_voice_answer(self, connection: Connection, envelope: VoiceAnswerMessage):
        sender = self._sender(connection, envelope.type)
        if sender is None:
            return
        message = VoiceAnswerRelay(answer=envelope.answer, from_=sender.peer_id)
        await self._send_to_peer(envelope.to, message.to_wire())

    async def _on_voice_candidate(self, connection: Connection, envelope: VoiceCandidateMessage):
        sender = self._sender(connection, envelope.type)
        if sender is None:
            return
        message = VoiceCandidateRelay(candidate=envelope.candidate, from_=sender.peer_id)
        await self._send_to_peer(envelope.to, message.to_wire())

    async def _on_call_signal(self, connection: Connection, envelope: CallSignalMessage):
        sender = self._sender(connection, envelope.type)
        if sender is None:
            return
        message = envelope.model_dump(by_alias=True, exclude_unset=True)
        message["from"] = sender.peer_id
        await self._broadcast(sender.room_id, message, exclude=connection)

    # Routing

    def _sender(self, connection: Connection, message_type: str) -> Optional[Membership]:
        membership = self.registry.membership_of(connection)
        if membership is None:
            logger.debug(f"Dropping {message_type} from connection {connection.connection_id}: not in a room")
        return membership

    async def _broadcast(self, room_id: str, message: dict, exclude: Optional[Connection] = None):
        async with self.registry.lock:
            members = self.registry.members_of(room_id)
        failed = self._deliver(members, message, exclude=exclude)
        logger.debug(f"Broadcast {message.get('type')} to room {room_id} ({len(members)} members)")
        await self._drop(failed)

    async def _send_to_peer(self, peer_id: str, message: dict):
        async with self.registry.lock:
            target = self.registry.connection_for(peer_id)
        if target is None:
            logger.debug(f"Dropping {message.get('type')} for peer {peer_id}: not connected")
            return
        await self._drop(self._deliver([target], message))

    def _broadcast_user_count(self, room_id: str) -> List[Connection]:
        """Send the current member count to everyone in ``room_id``. Caller holds the registry lock."""
        members = self.registry.members_of(room_id)
        message = UserCountMessage(payload=UserCountPayload(count=len(members))).to_wire()
        return self._deliver(members, message)

    @staticmethod
    def _deliver(members: Iterable[Connection], message: dict, exclude: Optional[Connection] = None) -> List[Connection]:
        failed = []
        for member in members:
            if member is exclude:
                continue
            if not member.send(message):
                failed.append(member)
        return failed

    async def _drop(self, connections: Iterable[Connection]):
        seen: Set[str] = set()
        for connection in connections:
            if connection.connection_id in seen:
                continue
            seen.add(connection.connection_id)
            await self.disconnect(connection)
