# geo_sync_API/app/api/v1/API_Deps/Sync_Deps.py
# The SyncContext and SyncManager are created once by the app lifespan and stored on app.state.
from fastapi import Depends, HTTPException, Request, status
from loguru import logger
#
# Local Imports
from geo_sync_API.app.core.DB_Management.Geo_DB import GeoDB
from geo_sync_API.app.core.Sync import SyncContext, SyncManager
#
#######################################################################################################################


def get_sync_context(request: Request) -> SyncContext:
    context = getattr(request.app.state, "sync_context", None)
    if context is None or not context.is_open:
        logger.error("Sync context requested but the application has no open context.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="Local store is not initialized.")
    return context


def get_geo_db(context: SyncContext = Depends(get_sync_context)) -> GeoDB:
    return context.db


def get_sync_manager(request: Request, context: SyncContext = Depends(get_sync_context)) -> SyncManager:
    manager = getattr(request.app.state, "sync_manager", None)
    if manager is None:
        manager = SyncManager(context)
        request.app.state.sync_manager = manager
    return manager

#
# End of Sync_Deps.py
#######################################################################################################################
