import os
import threading


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ["true", "1", "yes", "on"]


class BackendSettings:
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.DEBUG_MODE = os.environ.get("DEBUG_MODE", "development")

        # Security: Force disable debug info in API responses (overrides DEBUG_MODE)
        self.DISABLE_API_DEBUG_INFO = _env_bool("DISABLE_API_DEBUG_INFO", "false")

        # Chat state persistence (channels.json + messages/)
        self.CHAT_DATA_DIR = os.environ.get("CHAT_DATA_DIR", os.path.join(os.getcwd(), "data"))

        # Attachment blob store
        self.UPLOADS_DIR = os.environ.get("UPLOADS_DIR", os.path.join(os.getcwd(), "uploads"))
        self.UPLOADS_URL_PREFIX = os.environ.get("UPLOADS_URL_PREFIX", "/uploads")

        # Bearer token verification
        self.JWT_SECRET = os.environ.get("JWT_SECRET", "change-me")
        self.JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

        # WebSocket
        # Allow binding a socket to a bare ?userId=... (no token verification)
        self.WS_ALLOW_USER_ID_HANDSHAKE = _env_bool("WS_ALLOW_USER_ID_HANDSHAKE", "true")
        self.WS_MAX_TOTAL_CONNECTIONS = int(os.environ.get("WS_MAX_TOTAL_CONNECTIONS", 1000))
        self.WS_MAX_CONNECTIONS_PER_USER = int(os.environ.get("WS_MAX_CONNECTIONS_PER_USER", 10))
        self.WS_SEND_TIMEOUT = float(os.environ.get("WS_SEND_TIMEOUT", 5.0))

        self.CORS_ORIGINS = [
            origin.strip()
            for origin in os.environ.get(
                "CORS_ORIGINS",
                "http://localhost:5173,http://localhost:3000",
            ).split(",")
            if origin.strip()
        ]

        self.RATE_LIMIT_MESSAGES = os.environ.get("RATE_LIMIT_MESSAGES", "60/minute")

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(BackendSettings, cls).__new__(cls)
        return cls._instance

settings = BackendSettings()
