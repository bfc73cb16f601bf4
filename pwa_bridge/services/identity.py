"""Canonical client identity and live-room keys."""

from dataclasses import dataclass
from typing import Optional

from pwa_bridge.services.errors import ValidationError

ROOM_PREFIX = "pwa"
ROOM_DELIMITER = ":"


@dataclass(frozen=True)
class Identity:
    email: str
    seller_slug: str

    @property
    def is_identified(self) -> bool:
        return bool(self.email) and bool(self.seller_slug)


def normalize_field(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def normalize_identity(raw_email: Optional[str], raw_slug: Optional[str]) -> Identity:
    """Trim and lower-case both fields. Absent values become empty strings."""
    return Identity(email=normalize_field(raw_email), seller_slug=normalize_field(raw_slug))


def require_identity(raw_email: Optional[str], raw_slug: Optional[str]) -> Identity:
    """Normalize and refuse identities that cannot be routed."""
    identity = normalize_identity(raw_email, raw_slug)
    if not identity.email:
        raise ValidationError("email is required")
    if not identity.seller_slug:
        raise ValidationError("sellerSlug is required")
    if ROOM_DELIMITER in identity.seller_slug:
        raise ValidationError(f"sellerSlug must not contain '{ROOM_DELIMITER}'")
    return identity


def room_key(identity: Identity) -> str:
    # The slug never contains the delimiter, so the email may.
    return f"{ROOM_PREFIX}{ROOM_DELIMITER}{identity.seller_slug}{ROOM_DELIMITER}{identity.email}"


def parse_room_key(key: str) -> Identity:
    parts = key.split(ROOM_DELIMITER, 2)
    if len(parts) != 3 or parts[0] != ROOM_PREFIX:
        raise ValidationError(f"Invalid room key: {key}")
    return require_identity(parts[2], parts[1])
