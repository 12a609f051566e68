"""Service settings read from the environment.

  APP_ENV                  "production" hides error details from HTTP clients
  CORS_ORIGIN              comma-separated allowed origins (production only; "*" otherwise)
  HOST, PORT               bind address for `identify.py serve`
  LOG_LEVEL                root logging level (default INFO)
  RATE_LIMIT_WINDOW_MS     rate-limit window per client IP (default 15 minutes)
  RATE_LIMIT_MAX_REQUESTS  requests allowed per window (default 100)

Usage:
    from service_config import is_production, cors_origins
"""
import logging
import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_RATE_LIMIT_WINDOW_MS = 15 * 60 * 1000
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 100
MAX_BODY_BYTES = 10 * 1024


def environment() -> str:
    return os.environ.get("APP_ENV", "development")


def is_production() -> bool:
    return environment() == "production"


def cors_origins() -> list[str]:
    """Origins allowed by CORS: CORS_ORIGIN in production, everything otherwise."""
    if not is_production():
        return ["*"]
    raw = os.environ.get("CORS_ORIGIN", "")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def host() -> str:
    return os.environ.get("HOST", DEFAULT_HOST)


def port() -> int:
    return int(os.environ.get("PORT", str(DEFAULT_PORT)))


def rate_limit_window_seconds() -> float:
    ms = int(os.environ.get("RATE_LIMIT_WINDOW_MS") or DEFAULT_RATE_LIMIT_WINDOW_MS)
    return ms / 1000


def rate_limit_max_requests() -> int:
    return int(os.environ.get("RATE_LIMIT_MAX_REQUESTS") or DEFAULT_RATE_LIMIT_MAX_REQUESTS)


def configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
