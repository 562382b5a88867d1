"""
API error taxonomy.

Each error carries a stable machine-readable kind alongside the HTTP status;
responses are rendered as {"message": ..., "error": <kind>}.
"""

from fastapi import HTTPException


class ApiError(HTTPException):
    kind = "Internal"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return self.detail


class Unauthenticated(ApiError):
    kind = "Unauthenticated"
    status_code = 401
    default_message = "Unauthorized access"


class Forbidden(ApiError):
    kind = "Forbidden"
    status_code = 403
    default_message = "Forbidden access"


class NotFound(ApiError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found"


class InvalidArgument(ApiError):
    kind = "InvalidArgument"
    status_code = 400
    default_message = "Invalid request"


class Internal(ApiError):
    pass


KIND_BY_STATUS = {
    400: InvalidArgument.kind,
    401: Unauthenticated.kind,
    403: Forbidden.kind,
    404: NotFound.kind,
}


def kind_for_status(status_code: int) -> str:
    """Error kind for a plain HTTP status raised outside the taxonomy (e.g. 405)."""
    if status_code in KIND_BY_STATUS:
        return KIND_BY_STATUS[status_code]
    if status_code >= 500:
        return Internal.kind
    return InvalidArgument.kind
