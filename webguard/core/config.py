"""Application configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os

DEFAULT_ENVIRONMENT = "development"
PRODUCTION_ENVIRONMENT = "production"
DEFAULT_SESSION_SECRET = "change-me"

ENVELOPE_NESTED = "nested"
ENVELOPE_FLAT = "flat"
ERROR_ENVELOPES = frozenset({ENVELOPE_NESTED, ENVELOPE_FLAT})

_TRUTHY = frozenset({"1", "t", "true", "yes", "on"})


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def redact_secret(secret: str) -> str:
    """Return a non-recoverable placeholder for sensitive values."""
    if not secret:
        return "<empty>"
    return "<redacted>"


@dataclass(frozen=True)
class HandlerSettings:
    """Runtime settings consulted by the error normalizer."""

    environment: str = DEFAULT_ENVIRONMENT
    debug: bool = False
    envelope: str = ENVELOPE_NESTED

    def __post_init__(self) -> None:
        if self.envelope not in ERROR_ENVELOPES:
            raise ValueError(f"envelope must be one of {sorted(ERROR_ENVELOPES)}, got {self.envelope!r}")

    def is_production(self) -> bool:
        return self.environment == PRODUCTION_ENVIRONMENT

    def is_debug_enabled(self) -> bool:
        return self.debug


@dataclass(frozen=True)
class AppSettings:
    """Settings for the demo application entrypoint."""

    handler: HandlerSettings
    session_secret: str

    def safe_for_logging(self) -> dict[str, str | bool]:
        """Return app settings safe for logs."""
        return {
            "environment": self.handler.environment,
            "debug": self.handler.debug,
            "envelope": self.handler.envelope,
            "session_secret": redact_secret(self.session_secret),
        }


def load_handler_settings() -> HandlerSettings:
    """Build handler settings from the environment without caching."""
    return HandlerSettings(
        environment=os.getenv("WEBGUARD_ENV", DEFAULT_ENVIRONMENT).strip().lower(),
        debug=_get_bool_env("WEBGUARD_DEBUG", False),
        envelope=os.getenv("WEBGUARD_ERROR_ENVELOPE", ENVELOPE_NESTED).strip().lower(),
    )


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Load application settings from the environment."""
    return AppSettings(
        handler=load_handler_settings(),
        session_secret=os.getenv("WEBGUARD_SESSION_SECRET", DEFAULT_SESSION_SECRET),
    )
