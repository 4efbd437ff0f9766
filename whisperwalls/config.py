"""
Configuration loader.
Reads settings from the environment (and an optional .env file) and exposes
them to the application factory.
"""

import os
import secrets
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


# Server
SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "5000"))
DEBUG = _env_bool("DEBUG", False)

# Server-side sessions ("redis" in deployment, "null" disables Flask-Session)
SESSION_TYPE = os.getenv("SESSION_TYPE", "null")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
SESSION_KEY_PREFIX = os.getenv("SESSION_KEY_PREFIX", "whisperwalls:")
SESSION_LIFETIME_HOURS = int(os.getenv("SESSION_LIFETIME_HOURS", "24"))
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", True)

# Rate limiting
RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", True)

# Auth
TOKEN_LIFETIME_HOURS = int(os.getenv("TOKEN_LIFETIME_HOURS", "720"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Discovery
DEFAULT_PROXIMITY_METERS = float(os.getenv("DEFAULT_PROXIMITY_METERS", "100"))
DEFAULT_DWELL_SECONDS = int(os.getenv("DEFAULT_DWELL_SECONDS", "60"))
MAX_PROXIMITY_METERS = float(os.getenv("MAX_PROXIMITY_METERS", "50000"))
MAX_DWELL_SECONDS = int(os.getenv("MAX_DWELL_SECONDS", "86400"))
DEFAULT_QUERY_RADIUS = float(os.getenv("DEFAULT_QUERY_RADIUS", "5000"))
MAX_QUERY_RADIUS = float(os.getenv("MAX_QUERY_RADIUS", "50000"))
DEFAULT_QUERY_LIMIT = int(os.getenv("DEFAULT_QUERY_LIMIT", "50"))
MAX_QUERY_LIMIT = int(os.getenv("MAX_QUERY_LIMIT", "200"))
ENFORCE_DWELL_TIME = _env_bool("ENFORCE_DWELL_TIME", False)


def as_dict():
    """Upper-case settings of this module, for ``app.config.update``."""
    return {k: v for k, v in globals().items() if k.isupper()}
