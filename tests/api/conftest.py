"""Shared fixtures for API tests (in-process ASGI client over the in-memory ledger)"""
import pytest
import pytest_asyncio
import httpx
from typing import AsyncGenerator, Dict

from streakkeeper.api.middleware import limiter
from streakkeeper.api.routes import get_services
from streakkeeper.api.server import create_api_application
from streakkeeper.config import settings
from streakkeeper.services.container import ServiceContainer


@pytest.fixture
def services(fake_db, result_cache, habit_service, progress_service, achievement_service) -> ServiceContainer:
    """Container wired to the in-memory ledger"""
    container = ServiceContainer(db=fake_db, cache=result_cache)
    container._habit_service = habit_service
    container._progress_service = progress_service
    container._achievement_service = achievement_service
    return container


@pytest.fixture
def auth_headers(test_api_key: str, monkeypatch) -> Dict[str, str]:
    """Valid authentication headers"""
    monkeypatch.setattr(settings, "api_keys", test_api_key)
    return {"Authorization": f"Bearer {test_api_key}"}


@pytest.fixture
def app(services):
    application = create_api_application(use_lifespan=False)
    application.dependency_overrides[get_services] = lambda: services
    limiter.enabled = False
    yield application
    limiter.enabled = True


@pytest_asyncio.fixture
async def api_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client bound to the application"""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver"
    ) as client:
        yield client
