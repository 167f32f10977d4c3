# app/api/v1/endpoints/geo.py
# Description: CRUD endpoints for countries, states and cities. Every write lands in the local
#   store and the outbox in one transaction; nothing here talks to the cloud.
#
# Imports
from typing import Any, Dict, List
#
# 3rd-party Libraries
from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
#
# Local Imports
from geo_sync_API.app.api.v1.API_Deps.Sync_Deps import get_geo_db
from geo_sync_API.app.api.v1.schemas.geo_schemas import (
    CityCreate, CityResponse, CityUpdate,
    CountryCreate, CountryResponse, CountryUpdate,
    DetailResponse,
    StateCreate, StateResponse, StateUpdate,
)
from geo_sync_API.app.core.DB_Management.Geo_DB import (
    ConflictError, GeoDB, GeoDBError, InputError, RecordNotFoundError
)
#
#######################################################################################################################
#
# Functions:

router = APIRouter()

ERROR_RESPONSES = {
    status.HTTP_404_NOT_FOUND: {"model": DetailResponse},
    status.HTTP_409_CONFLICT: {"model": DetailResponse},
}


# --- Helper for Exception Handling ---
def handle_db_errors(e: Exception, entity_type: str = "resource"):
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, RecordNotFoundError):
        logger.warning(f"{entity_type} not found (ID: {e.entity_id}): {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity_type} not found")
    if isinstance(e, InputError):
        logger.warning(f"Input error for {entity_type}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, ConflictError):
        logger.warning(f"Conflict error for {entity_type} (ID: {e.entity_id}): {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, GeoDBError):
        logger.error(f"Database error for {entity_type}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            detail=f"A database error occurred while processing your request for {entity_type}.")
    if isinstance(e, ValueError):
        logger.warning(f"Value error for {entity_type}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.exception(f"Unexpected error for {entity_type}: {e}")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        detail=f"An unexpected error occurred while processing your request for {entity_type}.")


def _create(db: GeoDB, table: str, record: Dict[str, Any], entity_type: str) -> Dict[str, Any]:
    try:
        record_uuid = db.save_record(table, record)
        created = db.get_record(table, record_uuid)
        if not created:
            raise GeoDBError(f"{entity_type} '{record_uuid}' could not be read back after save.")
        return created
    except Exception as e:
        handle_db_errors(e, entity_type)


def _update(db: GeoDB, table: str, record_uuid: str, update_data: Dict[str, Any],
            entity_type: str) -> Dict[str, Any]:
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided for update.")
    try:
        existing = db.get_record(table, record_uuid)
        if not existing or existing.get("deleted_at"):
            raise RecordNotFoundError(f"{entity_type} not found.", entity=table, entity_id=record_uuid)
        merged = {**existing, **update_data, "last_updated": None}
        db.save_record(table, merged)
        return db.get_record(table, record_uuid)
    except Exception as e:
        handle_db_errors(e, entity_type)


def _delete(db: GeoDB, table: str, record_uuid: str, entity_type: str):
    try:
        db.soft_delete_guarded(table, record_uuid)
        logger.info(f"{entity_type} '{record_uuid}' soft-deleted (or was already deleted).")
    except Exception as e:
        handle_db_errors(e, entity_type)


# --- Countries ---
@router.post("/countries", response_model=CountryResponse, status_code=status.HTTP_201_CREATED,
             summary="Create or overwrite a country")
async def create_country(country_in: CountryCreate, db: GeoDB = Depends(get_geo_db)):
    return _create(db, "countries", country_in.model_dump(), "country")


@router.get("/countries", response_model=List[CountryResponse], summary="List active countries")
async def list_countries(db: GeoDB = Depends(get_geo_db)):
    try:
        return db.list_countries()
    except Exception as e:
        handle_db_errors(e, "countries list")


@router.put("/countries/{record_uuid}", response_model=CountryResponse, responses=ERROR_RESPONSES,
            summary="Update a country")
async def update_country(record_uuid: str, country_in: CountryUpdate, db: GeoDB = Depends(get_geo_db)):
    return _update(db, "countries", record_uuid, country_in.model_dump(exclude_unset=True), "country")


@router.delete("/countries/{record_uuid}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES,
               summary="Soft-delete a country that has no active states")
async def delete_country(record_uuid: str, db: GeoDB = Depends(get_geo_db)):
    _delete(db, "countries", record_uuid, "country")


# --- States ---
@router.post("/states", response_model=StateResponse, status_code=status.HTTP_201_CREATED,
             summary="Create or overwrite a state")
async def create_state(state_in: StateCreate, db: GeoDB = Depends(get_geo_db)):
    return _create(db, "states", state_in.model_dump(), "state")


@router.get("/states", response_model=List[StateResponse], summary="List active states with country names")
async def list_states(db: GeoDB = Depends(get_geo_db)):
    try:
        return db.list_states()
    except Exception as e:
        handle_db_errors(e, "states list")


@router.put("/states/{record_uuid}", response_model=StateResponse, responses=ERROR_RESPONSES,
            summary="Update a state")
async def update_state(record_uuid: str, state_in: StateUpdate, db: GeoDB = Depends(get_geo_db)):
    return _update(db, "states", record_uuid, state_in.model_dump(exclude_unset=True), "state")


@router.delete("/states/{record_uuid}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES,
               summary="Soft-delete a state that has no active cities")
async def delete_state(record_uuid: str, db: GeoDB = Depends(get_geo_db)):
    _delete(db, "states", record_uuid, "state")


# --- Cities ---
@router.post("/cities", response_model=CityResponse, status_code=status.HTTP_201_CREATED,
             summary="Create or overwrite a city")
async def create_city(city_in: CityCreate, db: GeoDB = Depends(get_geo_db)):
    return _create(db, "cities", city_in.model_dump(), "city")


@router.get("/cities", response_model=List[CityResponse], summary="List active cities with state names")
async def list_cities(db: GeoDB = Depends(get_geo_db)):
    try:
        return db.list_cities()
    except Exception as e:
        handle_db_errors(e, "cities list")


@router.put("/cities/{record_uuid}", response_model=CityResponse, responses=ERROR_RESPONSES,
            summary="Update a city")
async def update_city(record_uuid: str, city_in: CityUpdate, db: GeoDB = Depends(get_geo_db)):
    return _update(db, "cities", record_uuid, city_in.model_dump(exclude_unset=True), "city")


@router.delete("/cities/{record_uuid}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES,
               summary="Soft-delete a city")
async def delete_city(record_uuid: str, db: GeoDB = Depends(get_geo_db)):
    _delete(db, "cities", record_uuid, "city")

#
# End of geo.py
#######################################################################################################################
