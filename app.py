"""Main FastAPI application for the plugin host."""

import logging
import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv('.env')

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from plugin_host.constants import (
    BUNDLED_PLUGINS_DIR,
    INSTALLED_PLUGINS_DIR,
    PLUGIN_CONFIG_FILE,
    PLUGIN_STORAGE_FILE,
    get_extra_plugin_paths,
)
from plugin_host.core import create_core
from plugin_host.plugins.config import PluginConfigService
from plugin_host.plugins.storage import JsonFileStorageBackend
from plugin_host.routers import plugins_router

# Create FastAPI app
app = FastAPI(
    title="Plugin Host",
    description="Extensible host: plugin registry and in-process message bus",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(plugins_router)  # /api/plugins, /api/messages


@app.get("/")
async def root():
    return {"message": "Plugin Host API", "docs": "/docs"}


@app.on_event("startup")
async def startup_event():
    """Build the core and load plugins."""
    logger.info("Starting Plugin Host")

    search_paths = [
        (BUNDLED_PLUGINS_DIR, "bundled"),
        (INSTALLED_PLUGINS_DIR, "installed"),
    ]
    search_paths.extend((p, "external") for p in get_extra_plugin_paths())

    core = create_core(
        config=PluginConfigService(PLUGIN_CONFIG_FILE),
        storage_backend=JsonFileStorageBackend(PLUGIN_STORAGE_FILE),
        search_paths=search_paths,
    )
    app.state.core = core
    await core.initialize()


@app.on_event("shutdown")
async def shutdown_event():
    """Unload all plugins."""
    logger.info("Shutting down Plugin Host")
    core = getattr(app.state, "core", None)
    if core is not None:
        await core.destroy()
        app.state.core = None


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "9090"))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=True)
