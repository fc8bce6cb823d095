"""FastAPI dependencies for the plugin host.

The Core is created at application startup and kept on ``app.state.core``;
nothing here holds module-level instances.
"""

import logging

from fastapi import HTTPException, Request

from plugin_host.core import Core

logger = logging.getLogger(__name__)


def get_core(request: Request) -> Core:
    """Get the Core owned by the running application."""
    core = getattr(request.app.state, "core", None)
    if core is None:
        logger.error("Plugin core requested before application startup")
        raise HTTPException(status_code=503, detail="Plugin core is not initialized")
    return core
