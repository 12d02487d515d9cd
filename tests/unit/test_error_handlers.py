"""Unit tests for the error normalizer and shared error envelope."""

from __future__ import annotations

from dataclasses import dataclass
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from webguard.core.config import HandlerSettings
from webguard.core.errors import APIError
from webguard.core.errors import BAD_REQUEST
from webguard.core.errors import INTERNAL_SERVER_ERROR
from webguard.core.errors import NOT_FOUND
from webguard.core.errors import register_error_handlers
from webguard.core.handler import ErrorNormalizer
from webguard.core.handler import thrower
from webguard.validation.binding import PopulationError
from webguard.validation.binding import build_bindings
from webguard.validation.context import SourceKind

HANDLER_LOGGER = "webguard.core.handler"

PRODUCTION = HandlerSettings(environment="production")
DEVELOPMENT = HandlerSettings(environment="development")


@dataclass
class LimitQuery:
    limit: int = 10

    def validate(self) -> None:
        return None


class Unprintable:
    def __str__(self) -> str:
        return "unprintable value"


async def _noop_app(scope, receive, send) -> None:
    return None


def _build_client(settings: HandlerSettings) -> TestClient:
    app = FastAPI()
    register_error_handlers(app, settings)
    app.add_middleware(ErrorNormalizer, settings=settings)

    @app.get("/query")
    def query(limit: int) -> dict[str, int]:
        return {"limit": limit}

    @app.get("/not-found")
    def not_found() -> None:
        raise NOT_FOUND.build(message="News not found")

    @app.get("/domain")
    def domain_error() -> None:
        raise BAD_REQUEST.build(meta={"hint": "send text"}, context={"raw": "payload"})

    @app.get("/crash")
    def crash() -> None:
        raise RuntimeError("database password is hunter2")

    @app.get("/http")
    def http_error() -> None:
        raise StarletteHTTPException(status_code=403, detail="Not yours")

    @app.get("/teapot")
    def teapot() -> None:
        raise StarletteHTTPException(status_code=418)

    @app.get("/login")
    def login() -> None:
        raise StarletteHTTPException(status_code=401, headers={"WWW-Authenticate": "Bearer"})

    return TestClient(app)


def test_api_errors_keep_their_status_and_id() -> None:
    client = _build_client(DEVELOPMENT)

    response = client.get("/not-found")

    assert response.status_code == 404
    assert response.json() == {"error": {"id": "not_found", "message": "News not found"}}


def test_meta_is_rendered_and_context_is_dropped_in_production() -> None:
    client = _build_client(PRODUCTION)

    response = client.get("/domain")

    assert response.status_code == 400
    assert response.json() == {
        "error": {"id": "bad_request", "message": "Bad request."},
        "meta": {"hint": "send text"},
    }


def test_context_is_rendered_outside_production() -> None:
    client = _build_client(DEVELOPMENT)

    payload = client.get("/domain").json()

    assert payload["error"]["context"] == {"raw": "payload"}


def test_unexpected_errors_are_hidden_in_production() -> None:
    client = _build_client(PRODUCTION)

    response = client.get("/crash")

    assert response.status_code == 500
    assert response.json() == {"error": {"id": "internal_server_error", "message": "Internal server error."}}
    assert "hunter2" not in response.text


def test_unexpected_errors_are_echoed_outside_production() -> None:
    client = _build_client(DEVELOPMENT)

    response = client.get("/crash")

    assert response.status_code == 500
    assert response.json() == {
        "error": {"id": "internal_server_error", "message": "database password is hunter2"},
    }


def test_flat_envelope_puts_fields_at_top_level() -> None:
    client = _build_client(HandlerSettings(environment="development", envelope="flat"))

    response = client.get("/domain")

    assert response.json() == {
        "id": "bad_request",
        "message": "Bad request.",
        "meta": {"hint": "send text"},
        "context": {"raw": "payload"},
    }


def test_request_validation_errors_are_normalized_to_envelope() -> None:
    client = _build_client(DEVELOPMENT)

    response = client.get("/query")

    assert response.status_code == 422
    payload = response.json()
    assert payload["error"]["id"] == "validation_failed"
    assert payload["meta"]["errors"][0]["field"] == "limit"
    assert payload["meta"]["errors"][0]["message"][0].isupper()


def test_http_errors_map_to_known_kinds() -> None:
    client = _build_client(DEVELOPMENT)

    assert client.get("/http").json() == {"error": {"id": "forbidden", "message": "Not yours"}}
    assert client.get("/missing-route").json()["error"]["id"] == "not_found"

    teapot = client.get("/teapot")
    assert teapot.status_code == 418
    assert teapot.json()["error"]["id"] == "http_error"



def test_http_error_headers_reach_the_client() -> None:
    client = _build_client(PRODUCTION)

    not_allowed = client.post("/crash")
    assert not_allowed.status_code == 405
    assert not_allowed.json()["error"]["id"] == "method_not_allowed"
    assert "GET" in not_allowed.headers["allow"]

    unauthorized = client.get("/login")
    assert unauthorized.status_code == 401
    assert unauthorized.json()["error"]["id"] == "unauthorized"
    assert unauthorized.headers["www-authenticate"] == "Bearer"

@pytest.mark.parametrize(
    ("value", "expected_message"),
    [
        (ValueError("bad value"), "bad value"),
        ("plain string", "plain string"),
        (Unprintable(), "unprintable value"),
        (42, "42"),
    ],
)
def test_raised_values_are_classified_as_internal_errors(value: object, expected_message: str) -> None:
    normalizer = ErrorNormalizer(_noop_app, settings=DEVELOPMENT)

    fail = normalizer.convert_to_api_error(value)

    assert fail.id == "internal_server_error"
    assert fail.http_status == 500
    assert fail.message == expected_message
    assert fail.should_report is True


def test_api_errors_are_used_as_is() -> None:
    normalizer = ErrorNormalizer(_noop_app, settings=PRODUCTION)
    fail = NOT_FOUND.build()

    assert normalizer.convert_to_api_error(fail) is fail


def test_production_wrapping_suppresses_the_message() -> None:
    normalizer = ErrorNormalizer(_noop_app, settings=PRODUCTION)

    fail = normalizer.convert_to_api_error("secret detail")

    assert fail.message == INTERNAL_SERVER_ERROR.message
    assert fail.should_report is True


def test_recover_renders_non_exception_values() -> None:
    normalizer = ErrorNormalizer(_noop_app, settings=DEVELOPMENT)

    response = normalizer.recover("boom")

    assert response.status_code == 500
    assert b'"message":"boom"' in response.body


def test_error_kinds_are_never_mutated_by_builders() -> None:
    fail = NOT_FOUND.build(meta={"id": 1}).with_context("lookup").with_message("Gone")

    assert NOT_FOUND.message == "Requested object not found."
    assert fail.message == "Gone"
    assert fail.meta == {"id": 1}
    assert fail.context == "lookup"
    assert isinstance(fail, APIError)


def test_reported_errors_are_logged_with_trace_when_debug_is_off(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(DEVELOPMENT)

    with caplog.at_level(logging.ERROR, logger=HANDLER_LOGGER):
        client.get("/crash")

    messages = [record.getMessage() for record in caplog.records if record.name == HANDLER_LOGGER]
    assert len(messages) == 1
    assert "GET /crash" in messages[0]
    assert "--> " in messages[0] and "test_error_handlers.py" in messages[0]
    assert "Traceback" in messages[0]


def test_trace_is_skipped_when_debug_is_on(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(HandlerSettings(environment="development", debug=True))

    with caplog.at_level(logging.ERROR, logger=HANDLER_LOGGER):
        client.get("/crash")

    messages = [record.getMessage() for record in caplog.records if record.name == HANDLER_LOGGER]
    assert len(messages) == 1
    assert "Traceback" not in messages[0]


def test_unreported_errors_are_not_logged_in_production(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(PRODUCTION)

    with caplog.at_level(logging.ERROR, logger=HANDLER_LOGGER):
        client.get("/not-found")
        client.get("/crash")

    messages = [record.getMessage() for record in caplog.records if record.name == HANDLER_LOGGER]
    assert len(messages) == 1
    assert "RuntimeError" in messages[0]


def test_unknown_envelope_is_rejected() -> None:
    with pytest.raises(ValueError):
        HandlerSettings(envelope="xml")


def test_thrower_skips_every_frame_inside_the_package() -> None:
    (binding,) = build_bindings(LimitQuery, SourceKind.QUERY)

    try:
        binding.coerce_string("ten", SourceKind.QUERY)
    except PopulationError as exc:
        location = thrower(exc)

    assert "test_error_handlers.py" in location
    assert "binding.py" not in location
