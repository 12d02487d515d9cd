"""Per-request scratch state for request descriptors."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from typing import Protocol


class SourceKind(str, Enum):
    """Where descriptor data is read from."""

    JSON = "json"
    XML = "xml"
    FORM = "form"
    QUERY = "query"
    PARAMS = "params"


_SUFFIXES = (
    ("JSON", SourceKind.JSON),
    ("XML", SourceKind.XML),
    ("Form", SourceKind.FORM),
    ("Query", SourceKind.QUERY),
    ("Params", SourceKind.PARAMS),
)


class HTTPRequest(Protocol):
    """A request descriptor: a dataclass that knows how to validate itself.

    ``validate`` may take the current request as its only argument and may be a
    coroutine. It returns ``None`` when the descriptor is valid, otherwise a
    mapping of field identifier to failure message.
    """

    def validate(self, *args: Any) -> Any: ...


def resolve_source(descriptor_cls: type) -> SourceKind | None:
    """Return the declared source kind, or infer it from the class name suffix."""
    declared = getattr(descriptor_cls, "source", None)
    if declared is not None:
        return SourceKind(declared)

    name = descriptor_cls.__name__
    for suffix, kind in _SUFFIXES:
        if name.endswith(suffix):
            return kind
    return None


@dataclass
class RequestContext:
    """Descriptor instance plus what population and validation made of it."""

    request: Any
    name: str
    source: SourceKind | None
    errors: Mapping[str, str] | Exception | None = None
