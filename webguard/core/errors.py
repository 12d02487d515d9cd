"""API error types, well-known error kinds and exception handler registration."""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from webguard.core.config import ENVELOPE_FLAT
from webguard.core.config import HandlerSettings
from webguard.core.utils import uc_first
from webguard.schemas.error import ErrorObject
from webguard.schemas.error import ErrorResponse
from webguard.schemas.error import FlatErrorResponse
from webguard.schemas.error import ValidationError
from webguard.schemas.error import ValidationErrors


class APIError(Exception):
    """Structured error rendered as a JSON response by the error normalizer."""

    def __init__(
        self,
        *,
        id: str,
        message: str,
        http_status: int,
        should_report: bool = False,
        show_trace: bool = False,
        meta: Mapping[str, Any] | BaseModel | None = None,
        context: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.id = id
        self.message = message
        self.http_status = http_status
        self.should_report = should_report
        self.show_trace = show_trace
        self.meta = _meta_dict(meta)
        self.context = context
        self.headers = dict(headers) if headers else None

    def __repr__(self) -> str:
        return f"APIError(id={self.id!r}, message={self.message!r}, http_status={self.http_status})"

    def _copy(self, **changes: Any) -> APIError:
        values = {
            "id": self.id,
            "message": self.message,
            "http_status": self.http_status,
            "should_report": self.should_report,
            "show_trace": self.show_trace,
            "meta": self.meta,
            "context": self.context,
            "headers": self.headers,
        }
        values.update(changes)
        return APIError(**values)

    def with_meta(self, meta: Mapping[str, Any] | BaseModel) -> APIError:
        """Return a copy carrying ``meta`` in the response body."""
        return self._copy(meta=meta)

    def with_context(self, context: Any) -> APIError:
        """Return a copy carrying free-form diagnostic ``context``."""
        return self._copy(context=context)

    def with_message(self, message: str) -> APIError:
        """Return a copy with a custom user-facing message."""
        return self._copy(message=message)


def _meta_dict(meta: Mapping[str, Any] | BaseModel | None) -> dict[str, Any] | None:
    if meta is None:
        return None
    if isinstance(meta, BaseModel):
        return meta.model_dump(mode="json")
    return dict(meta)


@dataclass(frozen=True)
class ErrorKind:
    """Immutable template for a well-known class of API errors."""

    id: str
    message: str
    http_status: int
    should_report: bool = False

    def build(
        self,
        *,
        message: str | None = None,
        meta: Mapping[str, Any] | BaseModel | None = None,
        context: Any = None,
        show_trace: bool = False,
        headers: Mapping[str, str] | None = None,
    ) -> APIError:
        """Produce a fresh APIError of this kind."""
        return APIError(
            id=self.id,
            message=message if message is not None else self.message,
            http_status=self.http_status,
            should_report=self.should_report,
            show_trace=show_trace,
            meta=meta,
            context=context,
            headers=headers,
        )


BAD_REQUEST = ErrorKind("bad_request", "Bad request.", status.HTTP_400_BAD_REQUEST)
UNAUTHORIZED = ErrorKind("unauthorized", "Unauthorized.", status.HTTP_401_UNAUTHORIZED)
FORBIDDEN = ErrorKind("forbidden", "Access forbidden.", status.HTTP_403_FORBIDDEN)
NOT_FOUND = ErrorKind("not_found", "Requested object not found.", status.HTTP_404_NOT_FOUND)
METHOD_NOT_ALLOWED = ErrorKind("method_not_allowed", "Method not allowed.", status.HTTP_405_METHOD_NOT_ALLOWED)
VALIDATION_FAILED = ErrorKind(
    "validation_failed",
    "Validation failed.",
    422,
)
INTERNAL_SERVER_ERROR = ErrorKind(
    "internal_server_error",
    "Internal server error.",
    status.HTTP_500_INTERNAL_SERVER_ERROR,
    should_report=True,
)

_KINDS_BY_STATUS = {
    kind.http_status: kind
    for kind in (BAD_REQUEST, UNAUTHORIZED, FORBIDDEN, NOT_FOUND, METHOD_NOT_ALLOWED, VALIDATION_FAILED)
}


class Redirect(Exception):
    """Signal that the current request must end with a redirect response."""

    def __init__(self, url: str, *, status_code: int = status.HTTP_302_FOUND) -> None:
        super().__init__(url)
        self.url = url
        self.status_code = status_code

    def to_response(self) -> RedirectResponse:
        return RedirectResponse(self.url, status_code=self.status_code)


def validation_failed(errors: Sequence[ValidationError]) -> APIError:
    """Build a 422 error carrying ``errors`` as ``meta.errors``."""
    items = list(errors)
    return VALIDATION_FAILED.build(
        meta=ValidationErrors(errors=items),
        context=[item.model_dump() for item in items],
    )


def _safe_context(context: Any) -> Any:
    try:
        return jsonable_encoder(context)
    except (TypeError, ValueError):
        return repr(context)


def render_api_error(fail: APIError, settings: HandlerSettings) -> JSONResponse:
    """Serialize ``fail`` into the configured error envelope."""
    context = None
    if fail.context is not None and not settings.is_production():
        context = _safe_context(fail.context)

    if settings.envelope == ENVELOPE_FLAT:
        payload: BaseModel = FlatErrorResponse(id=fail.id, message=fail.message, meta=fail.meta, context=context)
    else:
        payload = ErrorResponse(error=ErrorObject(id=fail.id, message=fail.message, context=context), meta=fail.meta)
    return JSONResponse(
        status_code=fail.http_status,
        content=payload.model_dump(mode="json", exclude_none=True),
        headers=fail.headers,
    )


def http_exception_to_api_error(exc: StarletteHTTPException) -> APIError:
    """Map a framework HTTP exception onto the matching error kind."""
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else None
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return INTERNAL_SERVER_ERROR.build(headers=exc.headers)

    kind = _KINDS_BY_STATUS.get(exc.status_code)
    if kind is None:
        return APIError(
            id="http_error",
            message=message or "Request failed.",
            http_status=exc.status_code,
            headers=exc.headers,
        )
    return kind.build(message=message, headers=exc.headers)


def _format_location(location: tuple[Any, ...] | list[Any] | Any) -> str:
    if not isinstance(location, (tuple, list)):
        return str(location)

    prefixes = {"body", "query", "path", "header", "cookie"}
    filtered = [str(part) for part in location if part not in prefixes]
    if filtered:
        return ".".join(filtered)

    if not location:
        return "request"

    return str(location[0])


def request_validation_to_api_error(exc: RequestValidationError) -> APIError:
    """Convert FastAPI's own parameter validation errors into a 422 error."""
    errors = [
        ValidationError(
            field=_format_location(issue.get("loc", ())),
            message=uc_first(str(issue.get("msg", "Invalid value"))),
        )
        for issue in exc.errors()
    ]
    return validation_failed(errors)


def register_error_handlers(app: FastAPI, settings: HandlerSettings) -> None:
    """Render framework-raised errors through the shared error envelope."""

    async def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return render_api_error(request_validation_to_api_error(exc), settings)

    async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return render_api_error(http_exception_to_api_error(exc), settings)

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
