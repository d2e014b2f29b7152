"""
Root conftest for the pytest test suite.

Key Fixtures:
- `anyio_backend`: Specifies the asyncio backend.
- `initialize_test_db`: Creates a fresh in-memory SQLite schema for a test and
  tears it down afterwards. Request it from tests that touch the Tortoise models.
- `app_for_testing`: Provides the FastAPI application with its production
  lifespan replaced, so no database connection is opened and the report cache
  is a fresh instance per test.
- `client`: Provides a TestClient for `app_for_testing`.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise

from sales_pivot.features.pivot.cache import ReportCache
from sales_pivot.main import app as actual_app


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """
    Specifies the asyncio backend for async tests.
    """
    return "asyncio"


@pytest_asyncio.fixture(scope="function")
async def initialize_test_db() -> AsyncGenerator[None, None]:
    """
    Initializes a fresh in-memory database for one test function.
    """
    test_db_config = {
        "connections": {"default": "sqlite://:memory:"},
        "apps": {
            "models": {
                "models": ["sales_pivot.features.transactions.models"],
                "default_connection": "default",
            }
        },
    }
    await Tortoise.init(config=test_db_config)
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


@pytest.fixture(scope="function")
def app_for_testing() -> Generator[FastAPI, Any, None]:
    """
    Provides the FastAPI application with its production lifespan disabled.
    Dependency overrides set by a test are cleared afterwards.
    """
    original_lifespan = actual_app.router.lifespan_context

    @asynccontextmanager
    async def dummy_lifespan(app: FastAPI):
        app.state.report_cache = ReportCache(max_age_seconds=60, max_entries=8)
        yield

    actual_app.router.lifespan_context = dummy_lifespan

    yield actual_app

    actual_app.dependency_overrides.clear()
    actual_app.router.lifespan_context = original_lifespan


@pytest.fixture(scope="function")
def client(app_for_testing: FastAPI) -> Generator[TestClient, Any, None]:
    """
    Provides a starlette TestClient.
    """
    with TestClient(app_for_testing) as tc:
        yield tc
