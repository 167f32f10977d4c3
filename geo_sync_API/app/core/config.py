# config.py
# Description: Configuration settings for the geo sync application.
#
# Imports
import configparser
import os
from pathlib import Path
from typing import Any, Dict, Optional
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

DEFAULT_DEVICE_CODE = "DEVICE-001"
DEFAULT_DB_PATH = "./geo_sync_data/geo_sync.db"
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_PROBE_TIMEOUT = 2.0
DEFAULT_CONNECTIVITY_INTERVAL = 30.0


def get_config_path() -> Path:
    env_path = os.getenv("GEO_SYNC_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    # __file__ is .../geo_sync_API/app/core/config.py; project root is .../geo_sync_API
    project_root = Path(__file__).resolve().parent.parent.parent
    return project_root / 'Config_Files' / 'config.txt'


def load_comprehensive_config(config_path: Optional[Path] = None) -> configparser.ConfigParser:
    """Reads the INI config file. A missing or broken file yields an empty parser."""
    config_path_obj = config_path or get_config_path()
    config_parser = configparser.ConfigParser()
    if not config_path_obj.exists():
        logger.warning(f"Config file not found at {str(config_path_obj)}; using defaults.")
        return config_parser
    try:
        config_parser.read(config_path_obj)
    except configparser.Error as e:
        logger.error(f"Error parsing config file {str(config_path_obj)}: {e}. Using defaults.")
        return configparser.ConfigParser()
    logger.debug(f"load_comprehensive_config(): Sections found in config: {config_parser.sections()}")
    return config_parser


def _as_float(value: Any, default: float, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {key}: {value!r}. Using {default}.")
        return default


def _as_optional_int(value: Any, key: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {key}: {value!r}. Ignoring.")
        return None


def load_settings(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Builds the settings dictionary: config file values, overridden by environment variables."""
    config_parser = load_comprehensive_config(config_path)

    def pick(env_var: str, section: str, key: str, default: str = "") -> str:
        env_value = os.getenv(env_var)
        if env_value is not None:
            return env_value
        return config_parser.get(section, key, fallback=default)

    # --- Sync ---
    api_base = pick("GEO_SYNC_API_BASE", "Sync", "api_base").strip()
    device_code = pick("GEO_SYNC_DEVICE_CODE", "Sync", "device_code", DEFAULT_DEVICE_CODE).strip()
    reset_token = pick("GEO_SYNC_RESET_TOKEN", "Sync", "reset_token")
    http_timeout = _as_float(pick("GEO_SYNC_HTTP_TIMEOUT", "Sync", "http_timeout", str(DEFAULT_HTTP_TIMEOUT)),
                             DEFAULT_HTTP_TIMEOUT, "HTTP_TIMEOUT")
    probe_host = pick("GEO_SYNC_PROBE_HOST", "Sync", "probe_host").strip()
    probe_port = _as_optional_int(pick("GEO_SYNC_PROBE_PORT", "Sync", "probe_port"), "PROBE_PORT")
    probe_timeout = _as_float(pick("GEO_SYNC_PROBE_TIMEOUT", "Sync", "probe_timeout", str(DEFAULT_PROBE_TIMEOUT)),
                              DEFAULT_PROBE_TIMEOUT, "PROBE_TIMEOUT")
    connectivity_interval = _as_float(
        pick("GEO_SYNC_CONNECTIVITY_INTERVAL", "Sync", "connectivity_check_interval", str(DEFAULT_CONNECTIVITY_INTERVAL)),
        DEFAULT_CONNECTIVITY_INTERVAL, "CONNECTIVITY_INTERVAL")

    # --- Database ---
    db_path = pick("GEO_SYNC_DB_PATH", "Database", "db_path", DEFAULT_DB_PATH)

    # --- Logging ---
    log_level = pick("LOG_LEVEL", "Logging", "log_level", "INFO").upper()

    config_dict = {
        "API_BASE": api_base,
        "DEVICE_CODE": device_code or DEFAULT_DEVICE_CODE,
        "RESET_TOKEN": reset_token,
        "HTTP_TIMEOUT": http_timeout,
        "PROBE_HOST": probe_host,
        "PROBE_PORT": probe_port,
        "PROBE_TIMEOUT": probe_timeout,
        "CONNECTIVITY_INTERVAL": connectivity_interval,
        "DB_PATH": db_path,
        "LOG_LEVEL": log_level,
    }

    if not config_dict["API_BASE"]:
        logger.warning("No API_BASE configured: the app runs offline-only and sync is disabled.")
    if config_dict["API_BASE"] and not config_dict["RESET_TOKEN"]:
        logger.warning("No RESET_TOKEN configured: cloud truncate_all requests will be refused by the remote.")
    return config_dict


settings = load_settings()

#
# End of config.py
#######################################################################################################################
