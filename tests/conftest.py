"""
Pytest configuration and shared fixtures.

Builds engines wired to the in-memory mock index and a recording native
store, so no search cluster or database is needed.
"""

from __future__ import annotations

import logging
from typing import Any

import pytest

from searchdivert.backends.mock import MockIndex
from searchdivert.config import DivertConfig
from searchdivert.engine import QueryIntegration
from searchdivert.hooks import Hooks
from searchdivert.models import Author, Document, SearchEnvelope
from searchdivert.pipeline import QueryPipeline
from searchdivert.tenancy import MultiTenantDirectory


class RecordingStore:
    """Native store returning fixed rows and remembering every statement."""

    def __init__(self, rows: list[Any] | None = None, total: int = 0) -> None:
        self.rows = rows or []
        self.total = total
        self.fetched: list[str] = []
        self.counted: list[str] = []

    def fetch(self, sql: str) -> list[Any]:
        self.fetched.append(sql)
        return list(self.rows)

    def count(self, sql: str) -> int:
        self.counted.append(sql)
        return self.total


@pytest.fixture
def config() -> DivertConfig:
    return DivertConfig()


@pytest.fixture
def envelope() -> SearchEnvelope:
    return SearchEnvelope(
        found_documents=25,
        documents=(
            Document(
                post_id=5,
                post_parent=1,
                post_type="post",
                post_title="Kayak rentals",
                post_author=Author(id=3, display_name="Ann", login="ann"),
            ),
            Document(post_id=9, post_parent=0, site_id=2, post_type="page", post_title="Paddles"),
        ),
    )


@pytest.fixture
def index(envelope: SearchEnvelope) -> MockIndex:
    return MockIndex(envelope)


@pytest.fixture
def hooks() -> Hooks:
    return Hooks()


@pytest.fixture
def engine(index: MockIndex, config: DivertConfig, hooks: Hooks) -> QueryIntegration:
    return QueryIntegration(index, config, hooks=hooks)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def pipeline(engine: QueryIntegration, store: RecordingStore) -> QueryPipeline:
    host = QueryPipeline(store)
    engine.setup(host)
    return host


@pytest.fixture
def tenants() -> MultiTenantDirectory:
    return MultiTenantDirectory([1, 2, 3], current=1)


@pytest.fixture
def multisite_engine(
    index: MockIndex, config: DivertConfig, hooks: Hooks, tenants: MultiTenantDirectory
) -> QueryIntegration:
    return QueryIntegration(index, config, tenants=tenants, hooks=hooks)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo configure_logging() so caplog keeps seeing package records."""
    yield
    root = logging.getLogger("searchdivert")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
