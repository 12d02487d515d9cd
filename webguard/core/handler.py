"""Middleware turning anything raised downstream into a structured API error response."""

from __future__ import annotations

from pathlib import Path
import logging
import os
import traceback

import anyio
import fastapi
import starlette
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from webguard.core.config import HandlerSettings
from webguard.core.errors import APIError
from webguard.core.errors import INTERNAL_SERVER_ERROR
from webguard.core.errors import Redirect
from webguard.core.errors import render_api_error

logger = logging.getLogger(__name__)

_INTERNAL_ROOTS = tuple(
    str(Path(module.__file__).resolve().parent) + os.sep
    for module in (anyio, fastapi, starlette)
) + (str(Path(__file__).resolve().parents[1]) + os.sep,)


class ErrorNormalizer(BaseHTTPMiddleware):
    """Recover from downstream failures and answer with exactly one error response."""

    def __init__(self, app: ASGIApp, *, settings: HandlerSettings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Redirect as redirect:
            return redirect.to_response()
        except Exception as exc:
            return self.recover(exc, request)

    def recover(self, value: object, request: Request | None = None) -> Response:
        """Classify ``value``, report it when needed and render the response."""
        fail = self.convert_to_api_error(value)
        if self.need_to_report(fail):
            self.report(value, fail, request)
        return render_api_error(fail, self.settings)

    def convert_to_api_error(self, value: object) -> APIError:
        """Map any raised value onto an APIError, first match wins."""
        if isinstance(value, APIError):
            return value
        if isinstance(value, BaseException):
            return self.new_api_error(value)
        if isinstance(value, str):
            return self.new_api_error(RuntimeError(value))
        return self.new_api_error(RuntimeError(str(value)))

    def new_api_error(self, err: BaseException) -> APIError:
        """Wrap an unexpected error, hiding its text in production."""
        if self.settings.is_production():
            return INTERNAL_SERVER_ERROR.build()

        return APIError(
            id="internal_server_error",
            message=str(err),
            http_status=500,
            should_report=True,
        )

    def need_to_report(self, fail: APIError) -> bool:
        return fail.should_report or not self.settings.is_production()

    def need_to_add_trace(self, fail: APIError) -> bool:
        return fail.show_trace or not self.settings.is_debug_enabled()

    def report(self, value: object, fail: APIError, request: Request | None) -> None:
        lines = [f"[APIError] {value!r} [{fail.context!r}]"]
        if request is not None:
            lines.insert(0, f"{request.method} {request.url.path}")

        if self.need_to_add_trace(fail) and isinstance(value, BaseException):
            location = thrower(value)
            if location:
                lines.append(f"--> {location}")
            lines.append("".join(traceback.format_exception(type(value), value, value.__traceback__)).rstrip())

        logger.error("\n".join(lines))


def thrower(exc: BaseException) -> str:
    """Return ``file:line`` of the frame most likely responsible for ``exc``."""
    frames = traceback.extract_tb(exc.__traceback__)
    for frame in reversed(frames):
        filename = str(Path(frame.filename).resolve())
        if not filename.startswith(_INTERNAL_ROOTS):
            return f"{frame.filename}:{frame.lineno}"
    return ""
