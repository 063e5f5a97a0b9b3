"""
Errors Module
=============
Error kinds raised by the catalog, pricing, order and storage layers.

Every error renders to a plain error object via to_dict() so whichever
transport hosts this core can return it unchanged.
"""

from typing import Any, Dict, List, Optional


# ============================================================================
# BASE
# ============================================================================

class OrderingError(Exception):
    """Base class for all ordering errors."""

    kind = "ordering_error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Convert to error object."""
        return {
            "error": self.kind,
            "reason": self.reason
        }


# ============================================================================
# CALLER-FIXABLE
# ============================================================================

class ValidationError(OrderingError):
    """Malformed input (missing fields, wrong types, duplicates)."""

    kind = "validation_error"

    def __init__(
        self,
        reason: str,
        details: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(reason)
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.details:
            data["details"] = self.details
        return data


class NotFoundError(OrderingError):
    """
    Referenced product, size or add-on does not exist.

    Args:
        entity: "product", "size" or "addon"
        identifier: Offending id, label, or list of ids
        available: Valid alternatives (size labels), when known
    """

    kind = "not_found"

    def __init__(
        self,
        entity: str,
        identifier: Any,
        available: Optional[List[Any]] = None
    ):
        self.entity = entity
        self.identifier = identifier
        self.available = available

        if isinstance(identifier, (list, tuple)):
            shown = ", ".join(str(i) for i in identifier)
        else:
            shown = str(identifier)

        reason = f"{entity} not found: {shown}"
        if available is not None:
            reason += f" (available: {', '.join(str(a) for a in available)})"

        super().__init__(reason)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["entity"] = self.entity
        data["identifier"] = (
            list(self.identifier)
            if isinstance(self.identifier, (list, tuple))
            else self.identifier
        )
        if self.available is not None:
            data["available"] = list(self.available)
        return data


# ============================================================================
# INTERNAL
# ============================================================================

class StorageError(OrderingError):
    """Persistence collaborator failed to read or commit."""

    kind = "storage_error"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["operation"] = self.operation
        return data


def http_status(error: Exception) -> int:
    """Map an error to the HTTP status a transport layer should use."""
    if isinstance(error, (ValidationError, NotFoundError)):
        return 400
    return 500
