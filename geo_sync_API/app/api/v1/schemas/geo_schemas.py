# app/api/v1/schemas/geo_schemas.py
#
# Imports
from typing import Optional
# 3rd-party Libraries
from pydantic import BaseModel, ConfigDict, Field
#
# Local Imports
#
#######################################################################################################################
#
# Schemas:

UUID_DESCRIPTION = "Optional client-provided 32-hex UUID. If None, will be auto-generated."


# --- Country Schemas ---
class CountryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Country name")
    uuid: Optional[str] = Field(None, description=UUID_DESCRIPTION)


class CountryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="New country name")


class CountryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uuid: str
    name: str
    last_updated: str
    deleted_at: Optional[str] = None


# --- State Schemas ---
class StateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="State name")
    country_uuid: str = Field(..., min_length=1, description="UUID of the parent country")
    uuid: Optional[str] = Field(None, description=UUID_DESCRIPTION)


class StateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="New state name")
    country_uuid: Optional[str] = Field(None, min_length=1, description="New parent country UUID")


class StateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uuid: str
    name: str
    country_uuid: Optional[str] = None
    country_name: Optional[str] = Field(None, description="Parent display name; null when the parent is unknown")
    last_updated: str
    deleted_at: Optional[str] = None


# --- City Schemas ---
class CityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="City name")
    state_uuid: str = Field(..., min_length=1, description="UUID of the parent state")
    uuid: Optional[str] = Field(None, description=UUID_DESCRIPTION)


class CityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="New city name")
    state_uuid: Optional[str] = Field(None, min_length=1, description="New parent state UUID")


class CityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uuid: str
    name: str
    state_uuid: Optional[str] = None
    state_name: Optional[str] = None
    last_updated: str
    deleted_at: Optional[str] = None


class DetailResponse(BaseModel):
    detail: str

#
# End of geo_schemas.py
#######################################################################################################################
