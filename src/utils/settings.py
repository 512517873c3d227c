# src/utils/settings.py
import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DB_PATH = os.getenv("DB_PATH", "data/db.sqlite")

# object storage (local stand-in for a public bucket)
STORAGE_DIR = os.getenv("STORAGE_DIR", "data/storage")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "product-images")
STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "")

REALTIME_POLL_SECONDS = float(os.getenv("REALTIME_POLL_SECONDS", 1.0))

# forward-only order lifecycle; set to 0 to allow any status from any status
ORDER_STATUS_STRICT = _flag("ORDER_STATUS_STRICT", "1")

SESSION_FILE = os.getenv("SESSION_FILE", "data/session.json")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

DEBUG = _flag("DEBUG")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")
