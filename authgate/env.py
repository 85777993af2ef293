from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from .constants import LOGGER, REQUIRED_ENV


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    ttl = get_env_int("AUTHGATE_SESSION_TTL_SECONDS", 1)
    if ttl <= 0:
        raise RuntimeError("AUTHGATE_SESSION_TTL_SECONDS must be positive.")
    get_env_int("AUTHGATE_PROVIDER_TIMEOUT", 1)

    for key in ("DISCORD_REDIRECT", "GOOGLE_REDIRECT_URI"):
        if not os.getenv(key, "").strip().startswith("https://"):
            LOGGER.warning("%s is not an https URL.", key)


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("AUTHGATE_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
