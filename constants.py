import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

SERVER_VERSION = os.getenv("SERVER_VERSION", "2.2.0")

# Liveness supervisor timings, in seconds
PROBE_INTERVAL_SECONDS = float(os.getenv("PROBE_INTERVAL_SECONDS", 30))
EVICTION_INTERVAL_SECONDS = float(os.getenv("EVICTION_INTERVAL_SECONDS", 120))
PEER_TIMEOUT_SECONDS = float(os.getenv("PEER_TIMEOUT_SECONDS", 120))
EXPIRY_INTERVAL_SECONDS = float(os.getenv("EXPIRY_INTERVAL_SECONDS", 300))
ROOM_MAX_AGE_SECONDS = float(os.getenv("ROOM_MAX_AGE_SECONDS", 30 * 60))
STATS_INTERVAL_SECONDS = float(os.getenv("STATS_INTERVAL_SECONDS", 600))

# Room codes avoid 0/O and 1/I so they survive being read off a screen
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
ROOM_CODE_MIN_LENGTH = 4
ROOM_CODE_MAX_LENGTH = 6
