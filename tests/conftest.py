"""Fixtures: fake crawler, job service, test client."""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from pagecrawl.api.service import JobService
from pagecrawl.jobs.events import SubscriptionRegistry
from pagecrawl.jobs.store import JobStore
from pagecrawl.main import create_app
from tests.fakes import FakeCrawler


@pytest.fixture
def fake_crawler():
    return FakeCrawler()


@pytest_asyncio.fixture
async def job_service(fake_crawler):
    """JobService over an in-memory store, torn down after the test."""
    service = JobService(fake_crawler, JobStore(), SubscriptionRegistry())
    yield service
    await service.shutdown()


@pytest.fixture
def client(fake_crawler):
    """TestClient with the lifespan running against a fake crawler."""
    with TestClient(create_app(crawler=fake_crawler)) as test_client:
        yield test_client
