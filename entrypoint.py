import uvicorn
import os
from constants import HOST, LOG_FILE, LOG_LEVEL, PORT
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes", "on")
    logger.info(f"Starting signaling server on {HOST}:{PORT}")
    # Single worker: room state lives in this process unless SIGNALING_BACKEND=redis
    uvicorn.run("app:app", host=HOST, port=PORT, reload=reload)
