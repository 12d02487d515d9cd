"""Field binding tables and population of descriptors from request data."""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import MISSING
from dataclasses import dataclass
from dataclasses import fields
from dataclasses import is_dataclass
from typing import Any
from typing import Union
from typing import get_args
from typing import get_origin
from typing import get_type_hints
from xml.etree import ElementTree
import json
import logging
import re
import types

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request

from webguard.core.errors import APIError
from webguard.core.errors import BAD_REQUEST
from webguard.validation.context import RequestContext
from webguard.validation.context import SourceKind

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_STRING_SOURCES = frozenset({SourceKind.XML, SourceKind.FORM, SourceKind.QUERY, SourceKind.PARAMS})


class PopulationError(APIError):
    """Raised when request data cannot be decoded into a descriptor."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(
            id=BAD_REQUEST.id,
            message=message,
            http_status=BAD_REQUEST.http_status,
            context={"field": field} if field else None,
        )
        self.field = field


def _parse_int(value: str) -> int:
    if not _INTEGER_RE.fullmatch(value):
        raise ValueError(value)
    return int(value, 10)


def _parse_bool(value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(value)


_STRING_COERCIONS: dict[type, tuple[str, Callable[[str], Any]]] = {
    str: ("string", str),
    int: ("integer", _parse_int),
    bool: ("boolean", _parse_bool),
}


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", None) or str(annotation)


@dataclass(frozen=True)
class FieldBinding:
    """How one descriptor field is looked up and coerced for every source."""

    name: str
    annotation: Any
    keys: Mapping[SourceKind, str]
    adapter: TypeAdapter[Any]

    def key_for(self, source: SourceKind | None) -> str:
        if source is None:
            return self.name
        return self.keys.get(source, self.name)

    def coerce_string(self, value: str, source: SourceKind) -> Any:
        """Coerce a raw string from query, params, form or XML into the field type."""
        target = _unwrap_optional(self.annotation)
        coercion = _STRING_COERCIONS.get(target)
        if coercion is None:
            raise PopulationError(
                f"Request can obtain only string, integer or boolean. "
                f"{self.name} field found with {_type_name(self.annotation)} type.",
                field=self.name,
            )

        expected, parse = coercion
        try:
            return parse(value)
        except ValueError:
            raise PopulationError(
                f"Expected {expected} for {source.value} field {self.name}, but found '{value}' instead.",
                field=self.name,
            ) from None

    def coerce_json(self, value: Any) -> Any:
        try:
            return self.adapter.validate_python(value)
        except PydanticValidationError:
            raise PopulationError(
                f"Expected {_type_name(self.annotation)} for json field {self.name}, but found {value!r} instead.",
                field=self.name,
            ) from None


def build_bindings(descriptor_cls: type, source: SourceKind | None = None) -> tuple[FieldBinding, ...]:
    """Build the binding table of a descriptor class once, at registration time.

    Descriptors read from string sources (XML, form, query, params) may only
    declare string, integer or boolean fields.
    """
    if not is_dataclass(descriptor_cls):
        raise TypeError(f"{descriptor_cls.__name__} must be a dataclass to be used as a request descriptor")
    if descriptor_cls.__dataclass_params__.frozen:
        raise TypeError(f"{descriptor_cls.__name__} must not be frozen, fields are populated in place")
    if not callable(getattr(descriptor_cls, "validate", None)):
        raise TypeError(f"{descriptor_cls.__name__} must define validate()")

    hints = get_type_hints(descriptor_cls)
    bindings = []
    for item in fields(descriptor_cls):
        if not item.init or item.name.startswith("_"):
            continue
        if item.default is MISSING and item.default_factory is MISSING:
            raise TypeError(f"{descriptor_cls.__name__}.{item.name} needs a default value")

        annotation = hints.get(item.name, Any)
        if source in _STRING_SOURCES and _unwrap_optional(annotation) not in _STRING_COERCIONS:
            raise TypeError(
                f"Request can obtain only string, integer or boolean. "
                f"{descriptor_cls.__name__}.{item.name} field found with {_type_name(annotation)} type."
            )
        keys = {kind: item.metadata[kind.value] for kind in SourceKind if item.metadata.get(kind.value)}
        bindings.append(
            FieldBinding(
                name=item.name,
                annotation=annotation,
                keys=keys,
                adapter=TypeAdapter(annotation),
            )
        )
    return tuple(bindings)


async def populate(context: RequestContext, bindings: tuple[FieldBinding, ...], request: Request) -> None:
    """Fill the descriptor in ``context`` from the request, by source kind."""
    source = context.source
    if source is None:
        return

    if source is SourceKind.JSON:
        _populate_from_json(context.request, bindings, await request.body())
    elif source is SourceKind.XML:
        _populate_from_xml(context.request, bindings, await request.body())
    elif source is SourceKind.FORM:
        form = await request.form()
        _populate_from_source(context.request, bindings, source, form)
    elif source is SourceKind.QUERY:
        _populate_from_source(context.request, bindings, source, request.query_params)
    elif source is SourceKind.PARAMS:
        _populate_from_source(context.request, bindings, source, request.path_params)

    logger.debug("Populated %s from %s", context.name, source.value)


def _populate_from_source(
    descriptor: Any,
    bindings: tuple[FieldBinding, ...],
    source: SourceKind,
    values: Mapping[str, Any],
) -> None:
    for binding in bindings:
        key = binding.key_for(source)
        if key not in values:
            continue

        value = values[key]
        if not isinstance(value, str):
            raise PopulationError(
                f"Expected text value for {source.value} field {binding.name}.",
                field=binding.name,
            )
        setattr(descriptor, binding.name, binding.coerce_string(value, source))


def _populate_from_json(descriptor: Any, bindings: tuple[FieldBinding, ...], body: bytes) -> None:
    if not body.strip():
        return

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise PopulationError(f"Malformed JSON in request body: {exc}") from None

    if not isinstance(payload, dict):
        raise PopulationError("Expected JSON object in request body.")

    for binding in bindings:
        key = binding.key_for(SourceKind.JSON)
        if key in payload:
            setattr(descriptor, binding.name, binding.coerce_json(payload[key]))


def _populate_from_xml(descriptor: Any, bindings: tuple[FieldBinding, ...], body: bytes) -> None:
    if not body.strip():
        return

    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as exc:
        raise PopulationError(f"Malformed XML in request body: {exc}") from None

    for binding in bindings:
        element = root.find(binding.key_for(SourceKind.XML))
        if element is not None:
            value = (element.text or "").strip()
            setattr(descriptor, binding.name, binding.coerce_string(value, SourceKind.XML))
