import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigError

DEFAULT_DATABASE_URL = "sqlite:////tmp/verifresh-ledger.db"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
MAX_IMAGE_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    database_url: str
    program_id: str
    wallet_secret_key: str
    gemini_api_key: str
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    insight_timeout: float = 30.0
    request_timeout: float = 20.0
    max_image_bytes: int = MAX_IMAGE_BYTES
    base_url: str = "http://localhost:8000"
    log_level: str = "INFO"


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigError(f"{name} is not defined in the environment or .env file")
    return value


def _number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path)
    return Settings(
        database_url=os.getenv("LEDGER_DATABASE_URL", DEFAULT_DATABASE_URL),
        program_id=os.getenv("PROGRAM_ID", "verifresh-program"),
        wallet_secret_key=_required("SERVER_WALLET_SECRET_KEY"),
        gemini_api_key=_required("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL).rstrip("/"),
        insight_timeout=_number("INSIGHT_TIMEOUT_SECONDS", 30.0, float),
        request_timeout=_number("REQUEST_TIMEOUT_SECONDS", 20.0, float),
        max_image_bytes=_number("MAX_IMAGE_BYTES", MAX_IMAGE_BYTES, int),
        base_url=os.getenv("BASE_URL", "http://localhost:8000").rstrip("/"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
