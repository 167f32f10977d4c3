# geo_sync_API/app/core/Sync/field_mapping.py
# Local column name -> remote wire name, per entity table.
from typing import Any, Dict

FIELD_MAPPINGS: Dict[str, Dict[str, str]] = {
    "countries": {},
    "states": {"country_uuid": "country_id"},
    "cities": {"state_uuid": "state_id"},
}


def to_remote(table: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Renames local fields to the remote's naming. An already-present remote key is kept."""
    out = dict(data)
    for local_key, remote_key in FIELD_MAPPINGS.get(table, {}).items():
        if local_key in out:
            value = out.pop(local_key)
            if out.get(remote_key) in (None, ""):
                out[remote_key] = value
    return out


def to_local(table: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Inverse of to_remote; the local key wins when both are present."""
    out = dict(data)
    for local_key, remote_key in FIELD_MAPPINGS.get(table, {}).items():
        remote_value = out.pop(remote_key, None)
        if out.get(local_key) in (None, ""):
            out[local_key] = remote_value
    return out
