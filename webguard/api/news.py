"""News API routes."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Request
from fastapi.responses import PlainTextResponse

from webguard.core.session import get_flash
from webguard.schemas.news import NewsListQuery
from webguard.schemas.news import PostNewsForm
from webguard.schemas.news import PostNewsJSON
from webguard.schemas.news import PostNewsXML
from webguard.schemas.news import ShowNews
from webguard.validation.validator import ERRORS_KEY
from webguard.validation.validator import OLD_INPUT_KEY
from webguard.validation.validator import RequestValidator
from webguard.validation.validator import get_validated

validator = RequestValidator()

router = APIRouter(tags=["news"])


@router.get("/")
def index_endpoint(request: Request) -> dict[str, Any]:
    """Landing page payload with any flashed validation errors."""
    return {
        "errors": get_flash(request, ERRORS_KEY, []),
        "old_input": get_flash(request, OLD_INPUT_KEY, {}),
    }


@router.get("/news")
def list_news_endpoint(query: NewsListQuery = Depends(validator.validate_request(NewsListQuery))) -> dict[str, Any]:
    """Echo the listing filters."""
    return {"filters": asdict(query), "items": []}


@router.get("/news/{news_id}")
def show_news_endpoint(params: ShowNews = Depends(validator.validate_request(ShowNews))) -> dict[str, int]:
    """Echo the requested news id."""
    return {"id": params.news_id}


@router.post("/news", response_class=PlainTextResponse)
def create_news_from_form_endpoint(
    request: Request,
    _: PostNewsForm = Depends(validator.validate_request(PostNewsForm)),
) -> str:
    """Accept a form post and answer with its text."""
    return get_validated(request, PostNewsForm).text


@router.post("/api/news", status_code=201)
def create_news_endpoint(news: PostNewsJSON = Depends(validator.validate_request(PostNewsJSON))) -> dict[str, Any]:
    """Accept a JSON news item."""
    return asdict(news)


@router.post("/api/news.xml", status_code=201)
def create_news_from_xml_endpoint(news: PostNewsXML = Depends(validator.validate_request(PostNewsXML))) -> dict[str, Any]:
    """Accept an XML news item."""
    return asdict(news)
