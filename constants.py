import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Outbound messages buffered per connection before the peer is dropped
SEND_QUEUE_SIZE = int(os.getenv("SEND_QUEUE_SIZE", 256))

PEER_ID_LENGTH = int(os.getenv("PEER_ID_LENGTH", 8))

WS_MAX_SIZE = int(os.getenv("WS_MAX_SIZE", 16 * 1024 * 1024))
WS_PING_INTERVAL = float(os.getenv("WS_PING_INTERVAL", 20.0))

RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes", "on")
