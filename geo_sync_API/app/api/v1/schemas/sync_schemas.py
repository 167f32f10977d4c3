# app/api/v1/schemas/sync_schemas.py
#
# Imports
from typing import Optional
# 3rd-party Libraries
from pydantic import BaseModel, Field
#
#######################################################################################################################
#
# Schemas:

class SyncReportResponse(BaseModel):
    fetched: int = Field(0, description="Cloud queue entries received")
    applied: int = Field(0, description="Cloud entries written to the local store")
    kept_local: int = Field(0, description="Cloud entries acknowledged but superseded by newer local data")
    already_acked: int = Field(0, description="Cloud entries skipped because this device already processed them")
    pull_failed: int = 0
    fetch_error: Optional[str] = None
    pushed: int = Field(0, description="Outbox entries confirmed by the cloud and retired")
    push_failed: int = 0
    rejected: int = 0
    invalid: int = 0
    deferred: int = Field(0, description="Outbox entries held behind an earlier unsent entry of the same record")


class SyncStatusResponse(BaseModel):
    online: bool
    syncing: bool
    pending: int = Field(..., description="Outbox entries awaiting upload")
    device_code: str


class ResetRequest(BaseModel):
    reset_token: Optional[str] = Field(None, description="Overrides the configured X-Reset-Token secret")


class ResetResponse(BaseModel):
    local_cleared: bool
    cloud_ok: bool
