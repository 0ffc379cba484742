"""Shared API dependencies."""

import logging

from fastapi import Depends

from skilltrace.core.exceptions import NoRepositorySelectedError
from skilltrace.services.analysis import JobController

logger = logging.getLogger(__name__)

# One controller per process: the dashboard follows one repository at a time.
_controller: JobController | None = None


def get_controller() -> JobController:
    """Get or create the process-wide analysis job controller."""
    global _controller
    if _controller is None:
        _controller = JobController()
        logger.debug("Created analysis job controller")
    return _controller


def require_active_repository(controller: JobController = Depends(get_controller)) -> JobController:
    """Dependency: the controller, provided a repository has been selected."""
    if controller.repo_url is None:
        raise NoRepositorySelectedError()
    return controller


async def close_controller() -> None:
    """Stop tracking and drop the controller. Call on app shutdown."""
    global _controller
    if _controller is not None:
        await _controller.close()
        _controller = None
