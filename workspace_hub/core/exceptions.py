"""
Service-layer exception hierarchy.

Services raise these types and never build HTTP responses themselves.
The workspace blueprint registers one handler per type and maps them to
consistent status codes (404 / 422).

Usage:
    from workspace_hub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("title is required.", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND rows that belong to another
    workspace. A caller cannot tell the two apart, so a foreign id never
    confirms that the row exists elsewhere.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Task").
        resource_id: The PK that was looked up. Included in logs and message.
        workspace_id: Optional: the scope that was enforced.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        workspace_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.workspace_id = workspace_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a payload field is missing or cannot be normalized.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation, always qualified with the field
                 name (e.g. "category is required.").
        details: Optional field-level breakdown for structured API responses.
        field: Name of the offending payload key, when there is exactly one.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        field: str | None = None,
    ) -> None:
        self.field = field
        self.details = details or ({field: message} if field else {})
        super().__init__(message)
