"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from recruit.config import EnrichmentSettings
from recruit.enrichment import LinkedInEnricher
from recruit.models import Base


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed clock for scoring and merge tests."""
    return NOW


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async SQLite engine with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'candidates.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def enrichment_settings() -> EnrichmentSettings:
    """Enrichment settings with a token and no backoff delay."""
    return EnrichmentSettings(
        api_token="test-token",
        base_url="https://apify.test",
        search_url="https://search.test/search",
        max_retries=2,
        backoff_base_seconds=0.0,
    )


@pytest.fixture
def make_enricher(enrichment_settings) -> Callable[..., LinkedInEnricher]:
    """Build an enricher whose HTTP traffic goes to ``handler``."""
    def factory(handler, config: EnrichmentSettings | None = None) -> LinkedInEnricher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return LinkedInEnricher(client, config or enrichment_settings)
    return factory


@pytest.fixture
def apify_item() -> Dict[str, Any]:
    """One dataset item as returned by the LinkedIn profile scraper."""
    return {
        "fullName": "Jane Doe",
        "headline": "Senior backend engineer",
        "about": "Backend engineer working on distributed systems and payments.",
        "location": "Berlin, Germany",
        "connectionsCount": 640,
        "lastActivityTime": "2025-05-30T08:00:00Z",
        "openToWork": False,
        "profileUrl": "https://www.linkedin.com/in/janedoe/",
        "skills": ["Go", "Kubernetes"],
        "positions": [
            {
                "title": "Senior Engineer",
                "companyName": "Initech",
                "date": "2021 - present",
                "description": "Payments platform",
            },
            {
                "title": "Engineer",
                "companyName": "Hooli",
                "date": "2018 - 2021",
            },
        ],
        "schools": [
            {
                "schoolName": "University of Somewhere",
                "degree": "BSc",
                "fieldOfStudy": "Computer Science",
                "date": "2014 - 2018",
            },
        ],
        "posts": [
            {"text": "Shipped our new ledger service."},
            {"text": "Slides from the backend meetup are up."},
        ],
    }


@pytest.fixture
def apify_handler(apify_item) -> Callable[[httpx.Request], httpx.Response]:
    """Mock transport handler serving ``apify_item`` for every actor run."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[apify_item])
    return handler
