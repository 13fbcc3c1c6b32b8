"""Configuration settings for the SkimGuard application."""

from __future__ import annotations

import logging
import os
import sys

from utils.constants import DEFAULT_RSSI_ALERT_THRESHOLD

# Application version
VERSION = "1.0.0"


def _get_env(key: str, default: str) -> str:
    """Get environment variable with default."""
    return os.environ.get(f'SKIMGUARD_{key}', default)


def _get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer with default."""
    try:
        return int(os.environ.get(f'SKIMGUARD_{key}', str(default)))
    except ValueError:
        return default


def _get_env_float(key: str, default: float) -> float:
    """Get environment variable as float with default."""
    try:
        return float(os.environ.get(f'SKIMGUARD_{key}', str(default)))
    except ValueError:
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as boolean with default."""
    val = os.environ.get(f'SKIMGUARD_{key}', '').lower()
    if val in ('true', '1', 'yes', 'on'):
        return True
    if val in ('false', '0', 'no', 'off'):
        return False
    return default


# Logging configuration
_log_level_str = _get_env('LOG_LEVEL', 'WARNING').upper()
LOG_LEVEL = getattr(logging, _log_level_str, logging.WARNING)
LOG_FORMAT = _get_env('LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

# Server settings (local only, the UI runs on the same device)
HOST = _get_env('HOST', '127.0.0.1')
PORT = _get_env_int('PORT', 5060)
DEBUG = _get_env_bool('DEBUG', False)

# Storage locations. Empty means "next to the application" (instance/)
DB_PATH = _get_env('DB_PATH', '')
KEY_PATH = _get_env('KEY_PATH', '')

# Best-effort sync target. Empty disables sync entirely.
SYNC_URL = _get_env('SYNC_URL', '')
SYNC_API_KEY = _get_env('SYNC_API_KEY', '')
SYNC_TIMEOUT = _get_env_float('SYNC_TIMEOUT', 10.0)

# Scan defaults (overridable per operator through the settings table)
DEFAULT_ENVIRONMENT = _get_env('DEFAULT_ENVIRONMENT', 'ATM').upper()
SMART_FILTER = _get_env_bool('SMART_FILTER', True)
RSSI_ALERT_THRESHOLD = _get_env_int('RSSI_ALERT_THRESHOLD', DEFAULT_RSSI_ALERT_THRESHOLD)


def configure_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT,
        stream=sys.stderr
    )
    # Keep werkzeug request logs at the same level as the app
    logging.getLogger('werkzeug').setLevel(LOG_LEVEL)
