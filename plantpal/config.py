import os
from logging import StreamHandler, basicConfig, handlers

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./plantpal.db")

# Vertex AI (GCP_PROJECT_ID 未設定なら Gemini API のみ使用)
GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "")
GCP_LOCATION = os.getenv("GCP_LOCATION", "us-central1")
VERTEX_MODEL = os.getenv("VERTEX_MODEL", "gemini-2.5-pro")

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("VITE_GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-exp")
AI_REQUEST_TIMEOUT = float(os.getenv("AI_REQUEST_TIMEOUT", "60"))

FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
FIREBASE_PRIVATE_KEY = os.getenv("FIREBASE_PRIVATE_KEY", "").replace("\\n", "\n")
FIREBASE_CLIENT_EMAIL = os.getenv("FIREBASE_CLIENT_EMAIL", "")
# 開発用: トークンが無い/無効な場合は local-user として扱う。本番では false にすること
AUTH_DEV_FALLBACK = _get_bool("AUTH_DEV_FALLBACK", True)

API_PORT = int(os.getenv("API_PORT", "3001"))
CORS_ORIGINS = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
]

SESSION_IMAGE_TTL_SECONDS = float(os.getenv("SESSION_IMAGE_TTL_SECONDS", "600"))
SESSION_IMAGE_MAX_ENTRIES = int(os.getenv("SESSION_IMAGE_MAX_ENTRIES", "256"))
SESSION_IMAGE_MAX_BYTES = int(os.getenv("SESSION_IMAGE_MAX_BYTES", str(10 * 1024 * 1024)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")


def set_logger():
    log_handlers = [StreamHandler()]
    if LOG_FILE:
        log_handlers.append(
            handlers.RotatingFileHandler(
                LOG_FILE,
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding="utf-8",
            )
        )
    basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=log_handlers,
    )
