"""Input validation utilities for API endpoints and persisted payloads."""

from __future__ import annotations

import math
import re
from typing import Any

from utils.constants import MAX_NOTES_LENGTH, MAX_RSSI, MIN_RSSI


def validate_latitude(lat: Any) -> float:
    """Validate and return latitude value."""
    try:
        lat_float = float(lat)
        if not -90 <= lat_float <= 90:
            raise ValueError(f"Latitude must be between -90 and 90, got {lat_float}")
        return lat_float
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid latitude: {lat}") from e


def validate_longitude(lon: Any) -> float:
    """Validate and return longitude value."""
    try:
        lon_float = float(lon)
        if not -180 <= lon_float <= 180:
            raise ValueError(f"Longitude must be between -180 and 180, got {lon_float}")
        return lon_float
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid longitude: {lon}") from e


def validate_accuracy(accuracy: Any) -> float:
    """Validate and return a GPS accuracy radius in meters."""
    try:
        acc_float = float(accuracy)
        if not math.isfinite(acc_float) or acc_float < 0:
            raise ValueError(f"Accuracy must be a finite positive number, got {acc_float}")
        return acc_float
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid accuracy: {accuracy}") from e


def validate_rssi(rssi: Any) -> int:
    """Validate and return an RSSI reading in dBm."""
    if isinstance(rssi, bool):
        raise ValueError(f"Invalid RSSI: {rssi}")
    try:
        rssi_int = int(round(float(rssi)))
        if not MIN_RSSI <= rssi_int <= MAX_RSSI:
            raise ValueError(f"RSSI must be between {MIN_RSSI} and {MAX_RSSI}, got {rssi_int}")
        return rssi_int
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Invalid RSSI: {rssi}") from e


def validate_timestamp(timestamp: Any) -> int:
    """Validate and return an epoch timestamp in milliseconds."""
    if isinstance(timestamp, bool) or (isinstance(timestamp, float) and not timestamp.is_integer()):
        raise ValueError(f"Invalid timestamp: {timestamp}")
    try:
        ts_int = int(timestamp)
        if ts_int <= 0:
            raise ValueError(f"Timestamp must be positive, got {ts_int}")
        return ts_int
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}") from e


def validate_record_id(record_id: Any) -> str:
    """Validate and return a detection record ID."""
    if not record_id or not isinstance(record_id, str):
        raise ValueError("Record ID is required")
    record_id = record_id.strip()
    if not re.match(r'^[A-Za-z0-9][A-Za-z0-9\-_]{0,63}$', record_id):
        raise ValueError(f"Invalid record ID: {record_id}")
    return record_id


def validate_bool(value: Any, name: str = 'value') -> bool:
    """Validate and return a boolean, accepting common string forms."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', '1', 'yes', 'on'):
            return True
        if lowered in ('false', '0', 'no', 'off'):
            return False
    raise ValueError(f"Invalid {name}: {value}")


def sanitize_notes(notes: str | None) -> str | None:
    """Trim operator notes and enforce the maximum length."""
    if notes is None:
        return None
    notes = str(notes).strip()
    if not notes:
        return None
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValueError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")
    return notes
