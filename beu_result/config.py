from __future__ import annotations
import os
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv

DEFAULT_ORIGIN = "https://results.beup.ac.in"

def _getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name, str(default)).strip().lower()
    return v in ("1", "true", "yes", "y", "on")

def _getenv_number(name: str, default, cast=int):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        return default
    return value if value > 0 else default

@dataclass(frozen=True)
class Settings:
    # result site
    RESULT_SITE_ORIGIN: str = DEFAULT_ORIGIN

    # viewer
    RETRY_INTERVAL_SEC: float = 30.0
    REDIRECT_DELAY_MS: int = 50
    POLL_INTERVAL_MS: int = 2000
    SESSION_IDLE_TIMEOUT_SEC: float = 900.0

    # server
    HOST: str = "127.0.0.1"
    PORT: int = 5000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

def load_settings() -> Settings:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
    else:
        load_dotenv()

    origin = os.getenv("RESULT_SITE_ORIGIN", DEFAULT_ORIGIN).strip().rstrip("/") or DEFAULT_ORIGIN

    return Settings(
        RESULT_SITE_ORIGIN=origin,
        RETRY_INTERVAL_SEC=_getenv_number("RETRY_INTERVAL_SEC", 30.0, float),
        REDIRECT_DELAY_MS=_getenv_number("REDIRECT_DELAY_MS", 50),
        POLL_INTERVAL_MS=_getenv_number("POLL_INTERVAL_MS", 2000),
        SESSION_IDLE_TIMEOUT_SEC=_getenv_number("SESSION_IDLE_TIMEOUT_SEC", 900.0, float),
        HOST=os.getenv("HOST", "127.0.0.1").strip() or "127.0.0.1",
        PORT=_getenv_number("PORT", 5000),
        DEBUG=_getenv_bool("DEBUG", False),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
