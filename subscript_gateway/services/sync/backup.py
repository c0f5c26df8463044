"""
Backup Payload Validation

A backup blob is opaque to the server, but before handing a pulled blob
back to the app we check its rough shape: it must be a JSON object that
carries subscriptions or a budget. Anything else would wipe the user's
local data on restore.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from subscript_gateway.services.errors import DataError


def validate_backup_payload(data: Any) -> dict:
    """
    Check a backup blob and return it unchanged.

    Raises:
        DataError: If the blob cannot be a backup
    """
    if not isinstance(data, dict):
        raise DataError("Backup data must be a JSON object")

    if data.get("subscriptions") is None and data.get("budget") is None:
        raise DataError("Backup data is malformed: no subscriptions or budget found")

    subscriptions = data.get("subscriptions")
    if subscriptions is not None and not isinstance(subscriptions, list):
        raise DataError("Backup data is malformed: subscriptions must be a list")

    return data


def stamp_backup(data: dict, now: Optional[datetime] = None) -> dict:
    """Copy of data with lastUpdated set to an ISO-8601 UTC timestamp."""
    moment = now or datetime.now(timezone.utc)
    stamped = dict(data)
    stamped["lastUpdated"] = moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return stamped
