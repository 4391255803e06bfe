"""
Custom exceptions for the lab inventory core.
"""


class InventoryError(Exception):
    """Base exception for inventory errors."""

    code = "ERROR"

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class NotFoundError(InventoryError):
    """Raised when a referenced chemical, equipment, user, audit entry or notification does not exist."""
    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type.replace('_', ' ').capitalize()} {entity_id} not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class ValidationError(InventoryError):
    """Raised when input is malformed (bad enum value, missing required field)."""
    code = "VALIDATION_ERROR"


class PermissionDeniedError(InventoryError):
    """Raised when the acting user may not perform the operation."""
    code = "PERMISSION_DENIED"


class StoreError(InventoryError):
    """Raised when the underlying database operation fails."""
    code = "STORE_ERROR"


class ImmutabilityViolationError(InventoryError):
    """Raised when an append-only record would be modified or deleted."""
    code = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class SweepInProgressError(InventoryError):
    """Raised when another runner currently holds the notification sweep lease."""
    code = "SWEEP_IN_PROGRESS"
