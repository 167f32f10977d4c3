# main.py
# Description: FastAPI entry point for the offline-first geography sync service.
#
# Usage: uvicorn geo_sync_API.app.main:app --reload
#
# Imports
from contextlib import asynccontextmanager
#
# 3rd-party Libraries
from fastapi import FastAPI
from loguru import logger
#
# Local Imports
from geo_sync_API.app.api.v1.endpoints.geo import router as geo_router
from geo_sync_API.app.api.v1.endpoints.sync import router as sync_router
from geo_sync_API.app.core.Logging_Config import setup_logging
from geo_sync_API.app.core.Sync import ConnectivityMonitor, SyncContext, SyncManager
from geo_sync_API.app.core.config import settings
#
########################################################################################################################
#
# Functions:

setup_logging(settings["LOG_LEVEL"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    context = SyncContext.from_settings(settings).open()
    app.state.sync_context = context
    app.state.sync_manager = SyncManager(context)
    logger.info(f"App Startup: local store at {settings['DB_PATH']}, device {settings['DEVICE_CODE']}")
    monitor = ConnectivityMonitor(app.state.sync_manager, settings.get("CONNECTIVITY_INTERVAL", 30.0))
    monitor.start()
    app.state.connectivity_monitor = monitor
    yield
    logger.info("App Shutdown: Stopping connectivity monitor and closing sync context")
    await monitor.stop()
    app.state.connectivity_monitor = None
    context.close()
    app.state.sync_context = None
    app.state.sync_manager = None


app = FastAPI(
    title="Geo Sync API",
    version="0.1.0",
    description="Offline-first countries/states/cities store with outbox-based cloud sync",
    lifespan=lifespan,
)


@app.get("/")
async def root():
    return {"message": "Geo Sync API is running."}


# Router for country/state/city management
app.include_router(geo_router, prefix="/api/v1/geo", tags=["geo"])


# Router for sync operations
app.include_router(sync_router, prefix="/api/v1/sync", tags=["sync"])


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy"}

#
# End of main.py
########################################################################################################################
