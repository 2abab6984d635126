"""
API Token Management

Issues and validates the bearer tokens accepted by the license server.
Client tokens are scoped to one application id; admin tokens are not.
"""

import base64
import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from licensemanager.license_models import TokenRecord, ensure_utc
from licensemanager.license_storage import LicenseStorage

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LENGTH = 32
NEVER_EXPIRES_YEARS = 100


class TokenType(Enum):
    """Token type enumeration"""
    CLIENT = "client"
    ADMIN = "admin"


def generate_token(length: int = DEFAULT_TOKEN_LENGTH) -> str:
    """
    Generate a random API token

    Args:
        length: Number of random bytes

    Returns:
        URL-safe base64 encoding of the random bytes
    """
    if length <= 0:
        raise ValueError("token length must be positive")
    return base64.urlsafe_b64encode(secrets.token_bytes(length)).decode("ascii")


def token_expiry(days: int, now: Optional[datetime] = None) -> datetime:
    """
    Compute a token expiry time

    Args:
        days: Days of validity; 0 means the token never expires
        now: Reference time (defaults to UTC now)
    """
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    if days < 0:
        raise ValueError("days must not be negative")
    if days == 0:
        try:
            return now.replace(year=now.year + NEVER_EXPIRES_YEARS)
        except ValueError:
            # Feb 29 with no leap day a century later
            return now.replace(year=now.year + NEVER_EXPIRES_YEARS, day=28)
    return now + timedelta(days=days)


def create_token(storage: LicenseStorage, token_type: TokenType, app_id: str = "",
                 days: int = 0, length: int = DEFAULT_TOKEN_LENGTH) -> TokenRecord:
    """Generate a token and persist it"""
    token_type = TokenType(token_type)
    if token_type == TokenType.CLIENT and not app_id:
        raise ValueError("client tokens require an app id")

    record = TokenRecord(
        token=generate_token(length),
        token_type=token_type.value,
        app_id=app_id,
        expires_at=token_expiry(days)
    )
    storage.save_token(record)
    return record


def lookup_token(storage: LicenseStorage, token: str, now: Optional[datetime] = None) -> Optional[TokenRecord]:
    """
    Find an active token: known, not revoked and not expired

    Returns:
        The token record, or None
    """
    if not token:
        return None

    record = storage.get_token(token)
    if record is None:
        logger.warning(f"Unknown token {token[:8]}...")
        return None
    if record.revoked:
        logger.warning(f"Revoked token {token[:8]}...")
        return None

    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    if record.expires_at is not None and now > record.expires_at:
        logger.warning(f"Expired token {token[:8]}...")
        return None
    return record


def _scoped_to(record: TokenRecord, app_id: Optional[str]) -> bool:
    if record.token_type != TokenType.CLIENT.value:
        return True
    return bool(app_id) and record.app_id == app_id


def validate_token(storage: LicenseStorage, token: str, token_type: TokenType,
                   app_id: Optional[str] = None, now: Optional[datetime] = None) -> bool:
    """
    Check a presented token against the token store

    Args:
        storage: Token store
        token: Presented token
        token_type: Required token type
        app_id: Application the request is for; client tokens require a match
        now: Reference time (defaults to UTC now)

    Returns:
        True only for a known, unrevoked, unexpired token of the right type
    """
    record = lookup_token(storage, token, now)
    if record is None:
        return False
    if record.token_type != TokenType(token_type).value:
        logger.warning(f"Token {token[:8]}... has type {record.token_type}")
        return False
    if not _scoped_to(record, app_id):
        logger.warning(f"Token {token[:8]}... is not valid for app {app_id}")
        return False
    return True


def authorize_request(storage: LicenseStorage, token: str, app_id: Optional[str] = None,
                      now: Optional[datetime] = None) -> Optional[TokenRecord]:
    """
    Resolve the bearer token of an API request

    Admin tokens are accepted for any request. Client tokens are accepted only
    when the request names the application they were issued for, so requests
    that carry no app id are admin-only.

    Returns:
        The accepted token record, or None
    """
    record = lookup_token(storage, token, now)
    if record is None:
        return None
    if not _scoped_to(record, app_id):
        logger.warning(f"Token {token[:8]}... is not valid for app {app_id or '<none>'}")
        return None
    return record
