from typing import Optional


class BridgeError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BridgeError):
    """A required field is missing or malformed. Nothing was mutated."""


class LookupMiss(BridgeError):
    """No conversation or record matches the request."""


class DeliveryError(BridgeError):
    """An external system (Telegram, Airtable, Cloudinary) call failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message)
