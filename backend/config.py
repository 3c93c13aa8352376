"""Application-wide configuration constants."""

import os
from pathlib import Path

APP_NAME = "PeerDesk"

# --- Remote backend ---
BACKEND_URL = os.getenv("PEERDESK_BACKEND_URL", "http://localhost:8080").rstrip("/")
FILE_BASE_URL = os.getenv("PEERDESK_FILE_BASE_URL", "http://localhost:9000/files").rstrip("/")
WS_URL = os.getenv("PEERDESK_WS_URL", "ws://localhost:8080/ws")
REQUEST_TIMEOUT = float(os.getenv("PEERDESK_REQUEST_TIMEOUT", "15"))  # seconds

# --- Realtime channel ---
RECONNECT_DELAY = float(os.getenv("PEERDESK_RECONNECT_DELAY", "3"))  # seconds
MAX_RECONNECT_ATTEMPTS = int(os.getenv("PEERDESK_MAX_RECONNECT_ATTEMPTS", "5"))
CHAT_HISTORY_LIMIT = int(os.getenv("PEERDESK_CHAT_HISTORY_LIMIT", "500"))

# --- Discovery ---
DISCOVERY_CONCURRENCY = int(os.getenv("PEERDESK_DISCOVERY_CONCURRENCY", "4"))
PEER_FETCH_TIMEOUT = float(os.getenv("PEERDESK_PEER_FETCH_TIMEOUT", "10"))  # seconds

# --- Local API ---
API_HOST = os.getenv("PEERDESK_HOST", "127.0.0.1")
API_PORT = int(os.getenv("PEERDESK_PORT", "8766"))
LOG_LEVEL = os.getenv("PEERDESK_LOG_LEVEL", "INFO").upper()

FRONTEND_DIST = Path(
    os.getenv("PEERDESK_FRONTEND_DIST", str(Path(__file__).parent.parent / "frontend" / "dist"))
)
