"""API test fixtures: an HTTP client on the app with a fake-backed controller.

The process-wide controller dependency is overridden with the root
`controller` fixture, so every request in a test talks to the same
FakeBackend the test configures.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from skilltrace.api.deps import get_controller
from skilltrace.main import app
from skilltrace.services.analysis import JobController


@pytest.fixture
async def api_client(controller: JobController):
    """AsyncClient bound to the ASGI app with the controller dependency overridden."""
    app.dependency_overrides[get_controller] = lambda: controller
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_controller, None)
