"""
Exception hierarchy for metaconfig.

Every error carries a machine-readable name, a message, optional details
and the HTTP status the API layer should answer with.
"""
from typing import Any


class MetaconfigError(Exception):
    """Base exception for all service errors."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(MetaconfigError):
    """Input rejected before anything was written."""

    status_code = 400


class ConfigurationNotFoundError(MetaconfigError):
    """Unknown configuration id (or id owned by another tenant)."""

    status_code = 404

    def __init__(self, configuration_id: int):
        super().__init__(
            f"Configuration {configuration_id} not found",
            {"configuration_id": configuration_id},
        )
        self.configuration_id = configuration_id


class ExternalCallError(MetaconfigError):
    """A call to an external collaborator failed."""

    status_code = 502


class CatalogAPIError(ExternalCallError):
    """The catalog API answered with a transport or GraphQL error."""


class MetadataWriteError(ExternalCallError):
    """The catalog rejected some fields of a metadata write."""

    def __init__(self, item_id: str, field_errors: list[Any]):
        messages = "; ".join(
            f"{'.'.join(e.field) if e.field else 'input'}: {e.message}" for e in field_errors
        )
        super().__init__(
            f"Metadata write failed for {item_id}: {messages}",
            {"item_id": item_id, "field_errors": [e.model_dump() for e in field_errors]},
        )
        self.item_id = item_id
        self.field_errors = field_errors


class ResolutionError(ExternalCallError):
    """A structured-object reference could not be resolved to an id."""


class ResolutionDepthError(ResolutionError):
    """Structured-object nesting exceeded the configured depth."""
