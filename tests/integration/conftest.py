"""
Integration Test Fixtures
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient, ASGITransport

from src.api.booking.main import create_app
from src.core.config import KafkaConfig, ServiceConfig


@pytest.fixture
def app(db):
    """Booking app on the test database, no bus attached."""
    config = ServiceConfig(
        service_name="booking-service",
        reminder_offsets=[timedelta(hours=24), timedelta(hours=1)],
        kafka=KafkaConfig(),
    )
    return create_app(db=db, config=config)


@pytest.fixture
async def client(app):
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
