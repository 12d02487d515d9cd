"""Request validation: populate a descriptor, validate it and report failures."""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from typing import Any
from typing import TypeVar
import inspect
import logging

from pydantic import TypeAdapter
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from webguard.core.errors import Redirect
from webguard.core.errors import validation_failed
from webguard.core.session import flash
from webguard.core.utils import uc_first
from webguard.schemas.error import ValidationError
from webguard.validation.binding import FieldBinding
from webguard.validation.binding import PopulationError
from webguard.validation.binding import build_bindings
from webguard.validation.binding import populate
from webguard.validation.context import HTTPRequest
from webguard.validation.context import RequestContext
from webguard.validation.context import resolve_source

logger = logging.getLogger(__name__)

ERRORS_KEY = "_errors"
OLD_INPUT_KEY = "_old_input"
PREVIOUS_URL_KEY = "_previous_url"
VALIDATED_STATE_KEY = "validated_requests"

FailureHandler = Callable[[RequestContext, Request], Awaitable[None] | None]
DescriptorT = TypeVar("DescriptorT", bound=HTTPRequest)


async def _call(handler: FailureHandler, context: RequestContext, request: Request) -> None:
    result = handler(context, request)
    if inspect.isawaitable(result):
        await result


def wants_json(request: Request) -> bool:
    """True when the client asked for a JSON answer."""
    return "application/json" in request.headers.get("accept", "")


def is_ajax(request: Request) -> bool:
    return request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"


def get_validated(request: Request, descriptor_cls: type[DescriptorT]) -> DescriptorT:
    """Return the validated descriptor stored for this request."""
    stored = getattr(request.state, VALIDATED_STATE_KEY, {})
    return stored[descriptor_cls.__name__]


class RequestValidator:
    """Build request-validation dependencies with overridable failure handlers.

    ``api_handler`` runs for clients accepting JSON, ``web_handler`` for the
    rest and ``bad_request_handler`` when the request could not be decoded.
    Handlers receive the request context and the request and end the request by
    raising; one that returns normally gets the default error of its branch
    raised after it.
    """

    def __init__(
        self,
        *,
        api_handler: FailureHandler | None = None,
        web_handler: FailureHandler | None = None,
        bad_request_handler: FailureHandler | None = None,
    ) -> None:
        self.api_handler = api_handler or self.send_api_error
        self.web_handler = web_handler or self.send_web_error
        self.bad_request_handler = bad_request_handler or self.send_bad_request
        self._bindings: dict[type, tuple[FieldBinding, ...]] = {}
        self._old_input_adapters: dict[type, TypeAdapter[Any]] = {}

    def validate_request(self, descriptor_cls: type[DescriptorT]) -> Callable[[Request], Awaitable[DescriptorT]]:
        """Return a FastAPI dependency that yields a populated, valid descriptor."""
        source = resolve_source(descriptor_cls)
        bindings = build_bindings(descriptor_cls, source)
        self._bindings[descriptor_cls] = bindings
        self._old_input_adapters[descriptor_cls] = TypeAdapter(descriptor_cls)
        validate_takes_request = len(inspect.signature(descriptor_cls.validate).parameters) > 1

        async def dependency(request: Request) -> DescriptorT:
            context = RequestContext(request=descriptor_cls(), name=descriptor_cls.__name__, source=source)

            try:
                await populate(context, bindings, request)
            except PopulationError as exc:
                logger.info("Could not populate %s: %s", context.name, exc.message)
                context.errors = exc
                await _call(self.bad_request_handler, context, request)
                raise

            descriptor = context.request
            result = descriptor.validate(request) if validate_takes_request else descriptor.validate()
            if inspect.isawaitable(result):
                result = await result
            context.errors = result or None

            if context.errors is None:
                stored = getattr(request.state, VALIDATED_STATE_KEY, None)
                if stored is None:
                    stored = {}
                    setattr(request.state, VALIDATED_STATE_KEY, stored)
                stored[context.name] = descriptor
                return descriptor

            logger.info("Validation of %s failed for fields %s", context.name, sorted(context.errors))
            if wants_json(request):
                await _call(self.api_handler, context, request)
                await self.send_api_error(context, request)
            else:
                await _call(self.web_handler, context, request)
                await self.send_web_error(context, request)

        dependency.__name__ = f"validate_{descriptor_cls.__name__}"
        return dependency

    def convert_errors(self, context: RequestContext) -> list[ValidationError]:
        """Convert the context failures into field/message pairs."""
        fails = context.errors if isinstance(context.errors, Mapping) else {}
        bindings = {binding.name: binding for binding in self._bindings.get(type(context.request), ())}

        errors = []
        for field, message in fails.items():
            binding = bindings.get(field)
            errors.append(
                ValidationError(
                    field=binding.key_for(context.source) if binding else field,
                    message=uc_first(str(message)),
                )
            )
        return errors

    async def send_api_error(self, context: RequestContext, request: Request) -> None:
        raise validation_failed(self.convert_errors(context))

    async def send_web_error(self, context: RequestContext, request: Request) -> None:
        errors = self.convert_errors(context)
        adapter = self._old_input_adapters.get(type(context.request)) or TypeAdapter(type(context.request))
        old_input = adapter.dump_python(context.request, mode="json")

        flash(request, ERRORS_KEY, [error.model_dump() for error in errors])
        flash(request, OLD_INPUT_KEY, old_input)

        raise Redirect(self.redirect_back_url(request))

    async def send_bad_request(self, context: RequestContext, request: Request) -> None:
        if isinstance(context.errors, Exception):
            raise context.errors

    def redirect_back_url(self, request: Request) -> str:
        referer = request.headers.get("referer")
        if referer:
            return referer

        previous_url = request.session.get(PREVIOUS_URL_KEY)
        if previous_url:
            return previous_url

        return "/"

    def store_current_url(self, request: Request) -> None:
        if request.method == "GET" and not is_ajax(request) and not wants_json(request):
            request.session[PREVIOUS_URL_KEY] = str(request.url)


class PreviousURLMiddleware(BaseHTTPMiddleware):
    """Remember the last plain GET page so failed form posts can redirect back."""

    def __init__(self, app: ASGIApp, *, validator: RequestValidator) -> None:
        super().__init__(app)
        self.validator = validator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        finally:
            self.validator.store_current_url(request)
