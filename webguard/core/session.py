"""Flash storage on top of the Starlette session."""

from __future__ import annotations

from typing import Any

from starlette.requests import HTTPConnection

FLASH_KEY = "_flash"


def flash(request: HTTPConnection, key: str, value: Any) -> None:
    """Store ``value`` so that it can be read once by a later request."""
    flashed = dict(request.session.get(FLASH_KEY) or {})
    flashed[key] = value
    request.session[FLASH_KEY] = flashed


def get_flash(request: HTTPConnection, key: str, default: Any = None) -> Any:
    """Read and consume a flashed value."""
    flashed = dict(request.session.get(FLASH_KEY) or {})
    if key not in flashed:
        return default

    value = flashed.pop(key)
    if flashed:
        request.session[FLASH_KEY] = flashed
    else:
        request.session.pop(FLASH_KEY, None)
    return value
