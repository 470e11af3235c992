from contextlib import asynccontextmanager

from fastapi import FastAPI

from constants import LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from relay_server import RelayServer
from routers.relay import relay_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # All state is process memory; every restart starts from empty rooms
    app.state.relay = RelayServer()
    logger.info("Relay server ready")
    try:
        yield
    finally:
        await app.state.relay.shutdown()
        logger.info("Relay server stopped")


app = FastAPI(title="Room Relay", lifespan=lifespan)

app.include_router(relay_router)

logger.info("FastAPI application initialized")
