"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI

from .. import __version__
from ..container import Container
from .errors import install_error_handlers
from .routes import router

logger = logging.getLogger(__name__)


def create_app(container: Container) -> FastAPI:
    """
    Build the HTTP application around an already wired container.
    """
    app = FastAPI(
        title="slotbook",
        description="Weekly availability and dual-calendar booking",
        version=__version__,
    )
    app.state.container = container
    install_error_handlers(app)
    app.include_router(router)

    logger.info(
        "HTTP app ready: %d users, busy read policy %s, double-booking guard %s",
        len(container.config.users),
        container.config.busy_read_policy.value,
        "on" if container.config.prevent_double_booking else "off",
    )
    return app
