"""
Service-layer exception hierarchy.

Services raise these types; blueprints translate them into JSON responses
through ``fmea_smart.utils.errors.api_error`` so every endpoint reports the
same HTTP status for the same failure.

Usage:
    from fmea_smart.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Worksheet", resource_id="pfm26-m001")
    raise ValidationError("fmeaId is required", details={"fmeaId": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested FMEA record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Worksheet", "FmeaProject").
        resource_id: The key that was looked up.
        schema: Optional project namespace that was searched. Logged only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        schema: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.schema = schema
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if schema is not None:
            msg += f" (schema={schema})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed JSON but violates a business rule.

    Maps to HTTP 400 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ProvisioningError(Exception):
    """Raised when a project namespace or one of its tables cannot be created.

    Provisioning failures are fatal for the calling operation: they are never
    retried and the caller must not continue against a partially provisioned
    namespace. Maps to HTTP 500.

    Args:
        schema: The namespace being provisioned.
        table: The table whose DDL failed, or None for the namespace itself.
        cause: The underlying driver error.
    """

    def __init__(self, schema: str, table: str | None = None, cause: Exception | None = None) -> None:
        self.schema = schema
        self.table = table
        self.cause = cause
        target = f'"{schema}"."{table}"' if table else f'schema "{schema}"'
        msg = f"Failed to provision {target}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
