from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from logging_config import get_logger
from relay_server import RelayServer

logger = get_logger(__name__)

relay_router = APIRouter(tags=["relay"])


@relay_router.websocket("/")
@relay_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Relay socket. Clients send a ``join`` envelope first, then chat, audio and call signaling.

    Each frame is one JSON envelope. Binary frames and malformed envelopes are
    dropped without closing the socket.
    """
    relay: RelayServer = websocket.app.state.relay
    client_host = websocket.client.host if websocket.client else 'unknown'

    await websocket.accept()
    connection = relay.open(websocket)
    logger.info(f"WebSocket connection accepted from {client_host} as {connection.connection_id}")

    message_count = 0
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(code=message.get("code", 1000))

            data = message.get("text")
            if data is None:
                logger.debug(f"Ignoring binary frame from connection {connection.connection_id}")
                continue

            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection.connection_id}")
            await relay.handle_text(connection, data)

            if connection.closed:
                logger.info(f"Connection {connection.connection_id} was dropped by the relay, stopping receive loop")
                break
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket disconnected for connection {connection.connection_id} (code {e.code})")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection.connection_id}: {e}", exc_info=True)
    finally:
        await relay.disconnect(connection)
