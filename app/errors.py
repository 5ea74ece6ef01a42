"""
Error taxonomy shared by services, the assistant and the HTTP layer.

Services raise these; `app.core.middleware` turns any `BusinessError` into a
`{"error": detail}` response with the class status code.
"""


class BusinessError(Exception):
    status_code = 500
    default_detail = "Server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BusinessError):
    """Missing or malformed request fields; nothing was written."""

    status_code = 400
    default_detail = "Invalid request"


class InvalidSelection(ValidationError):
    default_detail = "Invalid service selection"


class ConflictError(BusinessError):
    status_code = 409
    default_detail = "Conflict"


class SlotConflict(ConflictError):
    default_detail = "Time slot no longer available"


class DuplicateBlock(ConflictError):
    default_detail = "Date already blocked"


class NotFoundError(BusinessError):
    status_code = 404
    default_detail = "Not found"


class UpstreamGenerationError(BusinessError):
    status_code = 502
    default_detail = "Failed to get AI response"


class InternalError(BusinessError):
    status_code = 500
    default_detail = "Server error"


class NotAuthenticated(BusinessError):
    status_code = 401
    default_detail = "Not authenticated"
