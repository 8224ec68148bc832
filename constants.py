import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

# Background sweeps
REAPER_INTERVAL_SECONDS = float(os.getenv("REAPER_INTERVAL_SECONDS", 60))
EXPIRY_SWEEP_INTERVAL_SECONDS = float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", 60))

# Pending join codes
MIN_PENDING_SECONDS = int(os.getenv("MIN_PENDING_SECONDS", 1))
MAX_PENDING_SECONDS = int(os.getenv("MAX_PENDING_SECONDS", 86400))
ROOM_ID_LENGTH = int(os.getenv("ROOM_ID_LENGTH", 32))

PUSH_WAITING_MESSAGE = os.getenv("PUSH_WAITING_MESSAGE", "Your chat partner is waiting")
