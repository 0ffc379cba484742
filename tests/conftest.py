"""Root conftest: shared fixtures for all skilltrace tests.

Provides:
- anyio backend pinned to asyncio (the controller relies on asyncio tasks)
- Autouse reset of the backend TTL caches
- A FakeBackend and a JobController wired to it with fast timings
"""

from __future__ import annotations

import pytest

from skilltrace.services.analysis import JobController
from skilltrace.services.backend import clear_backend_caches
from tests.helpers.mock_factories import FakeBackend


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear backend TTL caches before each test to prevent cross-test pollution."""
    clear_backend_caches()
    yield
    clear_backend_caches()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def controller(backend: FakeBackend):
    """JobController on the fake backend, with near-zero poll/settle delays."""
    ctrl = JobController(
        backend,  # type: ignore[arg-type]
        default_transport="stream",
        poll_interval=0.01,
        settle_delay=0.0,
    )
    yield ctrl
    await ctrl.close()
