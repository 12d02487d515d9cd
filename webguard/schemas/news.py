"""Request descriptors for the news endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import ClassVar

from starlette.requests import Request

from webguard.validation.context import SourceKind

MAX_TEXT_LENGTH = 500
MAX_PER_PAGE = 100


def _text_errors(text: str) -> dict[str, str]:
    if not text.strip():
        return {"text": "cannot be blank"}
    if len(text) > MAX_TEXT_LENGTH:
        return {"text": f"the length must be no more than {MAX_TEXT_LENGTH}"}
    return {}


@dataclass
class PostNewsJSON:
    """News item submitted by API clients."""

    text: str = field(default="", metadata={"json": "text"})
    pinned: bool = field(default=False, metadata={"json": "is_pinned"})

    def validate(self) -> dict[str, str] | None:
        return _text_errors(self.text) or None


@dataclass
class PostNewsXML:
    """News item submitted as an XML document."""

    text: str = field(default="", metadata={"xml": "text"})
    pinned: bool = field(default=False, metadata={"xml": "pinned"})

    def validate(self) -> dict[str, str] | None:
        return _text_errors(self.text) or None


@dataclass
class PostNewsForm:
    """News item submitted from the HTML form."""

    text: str = field(default="", metadata={"form": "text"})
    author: str = field(default="", metadata={"form": "author_name"})

    def validate(self) -> dict[str, str] | None:
        errors = _text_errors(self.text)
        if not self.author.strip():
            errors["author"] = "cannot be blank"
        return errors or None


@dataclass
class NewsListQuery:
    """Listing filters read from the query string."""

    page: int = field(default=1, metadata={"query": "page"})
    per_page: int = field(default=20, metadata={"query": "per_page"})
    pinned: bool | None = field(default=None, metadata={"query": "pinned"})
    search: str = field(default="", metadata={"query": "q"})

    def validate(self) -> dict[str, str] | None:
        errors = {}
        if self.page < 1:
            errors["page"] = "must be no less than 1"
        if not 1 <= self.per_page <= MAX_PER_PAGE:
            errors["per_page"] = f"must be between 1 and {MAX_PER_PAGE}"
        return errors or None


@dataclass
class ShowNews:
    """Route parameters of a single news item."""

    source: ClassVar[SourceKind] = SourceKind.PARAMS

    news_id: int = field(default=0, metadata={"params": "news_id"})

    async def validate(self, request: Request) -> dict[str, str] | None:
        if self.news_id < 1:
            return {"news_id": f"no news with id {self.news_id} on {request.url.path}"}
        return None
