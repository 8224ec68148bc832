import uvicorn
import os
from logging_config import setup_logging

# Setup logging before importing app
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)

from app import app
from constants import HOST, PORT
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting signaling server on {HOST}:{PORT}")
    # Live room state is per-process, so a single worker
    uvicorn.run(app, host=HOST, port=PORT, workers=1)
