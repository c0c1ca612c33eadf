from enum import Enum

import orjson
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from app.shared.config import config


class ValidationMode(str, Enum):
    """How the relay treats role misuse and role re-declaration."""

    PERMISSIVE = "permissive"
    STRICT = "strict"

    def __str__(self) -> str:
        return self.value


class IceServer(BaseModel):
    urls: str | list[str]
    username: str | None = None
    credential: str | None = None


DEFAULT_ICE_SERVERS: list[IceServer] = [
    IceServer(urls="stun:stun.l.google.com:19302"),
    IceServer(urls="stun:stun1.l.google.com:19302"),
    IceServer(urls="stun:stun2.l.google.com:19302"),
    IceServer(urls="stun:stun3.l.google.com:19302"),
    IceServer(urls="stun:stun4.l.google.com:19302"),
]


def parse_validation_mode(raw: str | None) -> ValidationMode:
    value = (raw or "").strip().lower() or ValidationMode.PERMISSIVE.value
    try:
        return ValidationMode(value)
    except ValueError:
        logger.warning("Unknown RELAY_VALIDATION_MODE '{}', using permissive", raw)
        return ValidationMode.PERMISSIVE


def parse_ice_servers(raw: str | None) -> list[IceServer]:
    """Parse a JSON list of ICE servers; fall back to the public STUN list."""
    if not (raw or "").strip():
        return list(DEFAULT_ICE_SERVERS)

    try:
        items = orjson.loads(raw)  # type: ignore[arg-type]
        if not isinstance(items, list):
            raise TypeError(f"expected a JSON list, got {type(items).__name__}")
        return [IceServer.model_validate(item) for item in items]
    except (orjson.JSONDecodeError, TypeError, ValidationError) as exc:
        logger.warning("Invalid RELAY_ICE_SERVERS, using defaults: {}", exc)
        return list(DEFAULT_ICE_SERVERS)


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get_bool("DEBUG")

    API_HOST: str = (config.get("API_HOST") or "").strip() or "0.0.0.0"
    API_PORT: int = config.get_api_port()
    # Relay state is process-local; more than one worker splits the registry.
    API_WORKERS: int = int((config.get("API_WORKERS") or "").strip() or 1)
    API_CORS_ORIGINS: list[str] = [
        x.strip() for x in (config.get("API_CORS_ORIGINS") or "*").split(",") if x.strip()
    ]

    # Relay configuration
    RELAY_VALIDATION_MODE: ValidationMode = parse_validation_mode(config.get("RELAY_VALIDATION_MODE"))
    RELAY_ICE_SERVERS: list[IceServer] = Field(
        default_factory=lambda: parse_ice_servers(config.get("RELAY_ICE_SERVERS"))
    )

    # Built frontend served at "/" when set
    STATIC_DIR: str | None = (config.get("STATIC_DIR") or "").strip() or None


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
