"""Shared pytest fixtures for webguard test suites."""

from collections.abc import Generator
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Provide a client over a fresh demo app in development mode."""
    from webguard.core.config import AppSettings
    from webguard.core.config import HandlerSettings
    from webguard.main import create_app

    app = create_app(AppSettings(handler=HandlerSettings(environment="testing"), session_secret="test-secret"))
    with TestClient(app) as test_client:
        yield test_client
