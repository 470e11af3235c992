import uvicorn
from constants import HOST, LOG_FILE, LOG_LEVEL, PORT, RELOAD, WS_MAX_SIZE, WS_PING_INTERVAL
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app  # noqa: E402
from logging_config import get_logger  # noqa: E402

logger = get_logger(__name__)


def main():
    logger.info(f"Starting relay server on ws://{HOST}:{PORT}")
    uvicorn.run(
        "app:app" if RELOAD else app,
        host=HOST,
        port=PORT,
        reload=RELOAD,
        ws_max_size=WS_MAX_SIZE,
        ws_ping_interval=WS_PING_INTERVAL,
        log_config=None,
    )


if __name__ == "__main__":
    main()
