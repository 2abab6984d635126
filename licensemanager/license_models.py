"""
License Manager Data Models

This module contains the shared data models for license issuance and
verification to avoid circular imports between modules.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone, time
from enum import Enum


class LicenseType(Enum):
    """License type enumeration"""
    OFFLINE = "offline"
    ONLINE = "online"
    DUAL = "dual"


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a timestamp as ISO 8601 UTC with microsecond precision"""
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO 8601 timestamp produced by format_timestamp"""
    if not isinstance(text, str):
        raise TypeError(f"timestamp must be a string, got {type(text).__name__}")
    return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))


def parse_expiry_date(text: str) -> datetime:
    """
    Parse a user supplied expiry date

    A bare date (YYYY-MM-DD) is valid through the last second of that day
    in UTC. Anything else must be a full ISO 8601 timestamp.

    Args:
        text: Date or timestamp string

    Returns:
        Timezone-aware UTC datetime
    """
    text = text.strip()
    if len(text) == 10:
        day = datetime.strptime(text, "%Y-%m-%d").date()
        return datetime.combine(day, time(23, 59, 59), tzinfo=timezone.utc)
    return parse_timestamp(text)


@dataclass
class License:
    """The protected license payload"""
    device_id: str
    expiry_date: datetime
    license_type: LicenseType
    features: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.expiry_date = ensure_utc(self.expiry_date)
        self.created_at = ensure_utc(self.created_at)
        if not isinstance(self.license_type, LicenseType):
            self.license_type = LicenseType(self.license_type)
        self.features = list(self.features or [])

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with a fixed field order"""
        return {
            "device_id": self.device_id,
            "expiry_date": format_timestamp(self.expiry_date),
            "license_type": self.license_type.value,
            "features": list(self.features),
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "License":
        """
        Build a License from its serialized form

        Raises:
            KeyError, ValueError, TypeError: On structural mismatch
        """
        if not isinstance(data, dict):
            raise TypeError("license payload must be an object")
        device_id = data["device_id"]
        features = data.get("features") or []
        if not isinstance(device_id, str):
            raise TypeError("device_id must be a string")
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            raise TypeError("features must be a list of strings")
        return cls(
            device_id=device_id,
            expiry_date=parse_timestamp(data["expiry_date"]),
            license_type=LicenseType(data["license_type"]),
            features=features,
            created_at=parse_timestamp(data["created_at"]),
        )


@dataclass
class VerifyResult:
    """Outcome of any verification path"""
    valid: bool
    expired: bool
    expiry_date: Optional[datetime] = None
    device_id: str = ""
    license_type: str = ""
    offline_valid: Optional[bool] = None
    online_valid: Optional[bool] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "valid": self.valid,
            "expired": self.expired,
            "expiry_date": format_timestamp(self.expiry_date) if self.expiry_date else None,
            "device_id": self.device_id,
            "license_type": self.license_type,
            "message": self.message,
        }
        if self.offline_valid is not None:
            data["offline_valid"] = self.offline_valid
        if self.online_valid is not None:
            data["online_valid"] = self.online_valid
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifyResult":
        if not isinstance(data, dict):
            raise TypeError("verify result must be an object")
        valid = data["valid"]
        expired = data["expired"]
        if not isinstance(valid, bool) or not isinstance(expired, bool):
            raise TypeError("valid and expired must be booleans")
        expiry_date = data.get("expiry_date")
        return cls(
            valid=valid,
            expired=expired,
            expiry_date=parse_timestamp(expiry_date) if expiry_date else None,
            device_id=data.get("device_id", ""),
            license_type=data.get("license_type", ""),
            offline_valid=data.get("offline_valid"),
            online_valid=data.get("online_valid"),
            message=data.get("message", ""),
        )


@dataclass
class LicenseRecord:
    """Issued license as persisted by the license server"""
    device_id: str
    license_key: str
    license_type: str
    expiry_date: datetime
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class DeviceRecord:
    """Registered device"""
    device_id: str
    device_name: str = ""
    app_id: str = ""
    license_id: Optional[int] = None
    status: str = "active"  # active, expired, revoked
    registered_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class TokenRecord:
    """API token used by clients and administrators"""
    token: str
    token_type: str  # client, admin
    app_id: str = ""
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    revoked: bool = False
    id: Optional[int] = None
