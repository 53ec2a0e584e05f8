"""
Error taxonomy for the FacturaE pipeline.

Internal code raises these; the public service methods catch them and turn
them into ``success=False`` results so they never cross the module boundary.
"""

from __future__ import annotations


class FacturaEError(Exception):
    """Base exception for FacturaE pipeline errors."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors) if errors else [message]

    @property
    def error_type(self) -> str:
        return type(self).__name__


class ValidationError(FacturaEError):
    """Missing or invalid business data."""


class NotFoundError(FacturaEError):
    """Invoice, client, company or certificate does not exist."""


class StateError(FacturaEError):
    """Operation not allowed in the current submission state."""


class CryptoError(FacturaEError):
    """Certificate invalid, expired or unusable for signing."""


class IntegrationError(FacturaEError):
    """FACE transport failure or unexpected gateway response."""


ERROR_TYPES: dict[str, type[FacturaEError]] = {
    cls.__name__: cls for cls in (ValidationError, NotFoundError, StateError, CryptoError, IntegrationError)
}
