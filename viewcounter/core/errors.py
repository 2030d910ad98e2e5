"""
Error taxonomy for the analytics core.

Every error raised by the core derives from ViewCounterError so the routing
layer can translate results into transport responses in one place.
"""

from __future__ import annotations


class ViewCounterError(Exception):
    """Base class for all viewcounter errors."""

    code = "error"


class ConfigurationError(ViewCounterError):
    """Invalid or missing startup parameters. Fatal."""

    code = "configuration_error"


class NotInitializedError(ViewCounterError):
    """A core operation was invoked before the tenant relation was provisioned."""

    code = "not_initialized"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant '{tenant_id}' has not been initialized")
        self.tenant_id = tenant_id


class ValidationError(ViewCounterError):
    """Tenant id or enum value outside the allow-list."""

    code = "invalid_value"

    def __init__(self, message: str, field_name: str | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.field_name = field_name
        if code is not None:
            self.code = code


class StorageError(ViewCounterError):
    """Transient connectivity or query failure. Callers may retry."""

    code = "storage_error"


class PrivacyInvariantViolation(ViewCounterError):
    """An unmasked network address reached a storage call."""

    code = "privacy_violation"
