# app/api/v1/endpoints/sync.py
# Description: Endpoints to trigger a sync cycle, inspect sync status and run the administrative full reset.
#
# Imports
import asyncio
from typing import Optional
#
# 3rd-party imports
from fastapi import APIRouter, Body, Depends, HTTPException, status
from loguru import logger
#
# Local Imports
from geo_sync_API.app.api.v1.API_Deps.Sync_Deps import get_sync_manager
from geo_sync_API.app.api.v1.schemas.sync_schemas import (
    ResetRequest, ResetResponse, SyncReportResponse, SyncStatusResponse
)
from geo_sync_API.app.core.DB_Management.Geo_DB import GeoDBError
from geo_sync_API.app.core.Sync import SyncError, SyncInProgressError, SyncManager, TransportError
#
#######################################################################################################################
#
# Functions:

router = APIRouter()


async def _require_online(manager: SyncManager):
    # The gate may probe the network, so it runs in a worker thread.
    if not await asyncio.to_thread(manager.is_online):
        logger.info("Sync endpoint called while offline or without a configured remote.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="Offline or no remote API configured.")


@router.post("/run", response_model=SyncReportResponse, summary="Run one sync cycle (cloud -> local, then local -> cloud)")
async def run_sync(manager: SyncManager = Depends(get_sync_manager)):
    await _require_online(manager)
    try:
        report = await asyncio.to_thread(manager.sync_now)
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (SyncError, GeoDBError) as e:
        logger.error(f"Sync cycle aborted: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Sync failed: {e}")
    return report.to_dict()


@router.get("/status", response_model=SyncStatusResponse, summary="Connectivity, guard and outbox status")
async def sync_status(manager: SyncManager = Depends(get_sync_manager)):
    try:
        pending = manager.db.count_outbox_entries()
    except GeoDBError as e:
        logger.error(f"Could not count outbox entries: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not read outbox.")
    online = await asyncio.to_thread(manager.is_online)
    return {
        "online": online,
        "syncing": manager.is_syncing,
        "pending": pending,
        "device_code": manager.context.device_code,
    }


@router.post("/reset", response_model=ResetResponse, summary="Erase local data and truncate the cloud store")
async def reset_all(reset_in: Optional[ResetRequest] = Body(None), manager: SyncManager = Depends(get_sync_manager)):
    await _require_online(manager)
    token = reset_in.reset_token if reset_in else None
    try:
        cloud_ok = await asyncio.to_thread(manager.reset_all, token)
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except TransportError as e:
        logger.error(f"Cloud reset failed after local wipe: {e}")
        return {"local_cleared": True, "cloud_ok": False}
    except GeoDBError as e:
        logger.error(f"Local reset failed: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Local reset failed.")
    return {"local_cleared": True, "cloud_ok": cloud_ok}

#
# End of sync.py
#######################################################################################################################
