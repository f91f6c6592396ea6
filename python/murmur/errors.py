"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_MODEL_NOT_FOUND = "E_MODEL_NOT_FOUND"
    E_PROVIDER_NOT_FOUND = "E_PROVIDER_NOT_FOUND"
    E_AGENT_NOT_FOUND = "E_AGENT_NOT_FOUND"

    # Conflict errors (409)
    E_CONVERSATION_EXISTS = "E_CONVERSATION_EXISTS"
    E_PROVIDER_EXISTS = "E_PROVIDER_EXISTS"
    E_MODEL_EXISTS = "E_MODEL_EXISTS"
    E_AGENT_EXISTS = "E_AGENT_EXISTS"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_CURSOR = "E_INVALID_CURSOR"
    E_MODEL_NOT_AVAILABLE = "E_MODEL_NOT_AVAILABLE"
    E_FILE_TOO_LARGE = "E_FILE_TOO_LARGE"

    # Upstream / server errors
    E_TRANSCRIPTION_FAILED = "E_TRANSCRIPTION_FAILED"  # 502
    E_LLM_PROVIDER_ERROR = "E_LLM_PROVIDER_ERROR"  # 502
    E_SPEECH_FAILED = "E_SPEECH_FAILED"  # 502
    E_TRANSCRIPTION_UNAVAILABLE = "E_TRANSCRIPTION_UNAVAILABLE"  # 503
    E_SPEECH_UNAVAILABLE = "E_SPEECH_UNAVAILABLE"  # 503
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_MODEL_NOT_FOUND: 404,
    ApiErrorCode.E_PROVIDER_NOT_FOUND: 404,
    ApiErrorCode.E_AGENT_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_EXISTS: 409,
    ApiErrorCode.E_PROVIDER_EXISTS: 409,
    ApiErrorCode.E_MODEL_EXISTS: 409,
    ApiErrorCode.E_AGENT_EXISTS: 409,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_CURSOR: 400,
    ApiErrorCode.E_MODEL_NOT_AVAILABLE: 400,
    ApiErrorCode.E_FILE_TOO_LARGE: 413,
    ApiErrorCode.E_TRANSCRIPTION_FAILED: 502,
    ApiErrorCode.E_LLM_PROVIDER_ERROR: 502,
    ApiErrorCode.E_SPEECH_FAILED: 502,
    ApiErrorCode.E_TRANSCRIPTION_UNAVAILABLE: 503,
    ApiErrorCode.E_SPEECH_UNAVAILABLE: 503,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error.

    Also used when the resource exists but belongs to another user, so
    existence is never leaked across owners.
    """

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ConflictError(ApiError):
    """Resource already exists."""

    def __init__(self, code: ApiErrorCode, message: str = "Already exists"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class ModelNotAvailableError(ApiError):
    """Requested model id cannot be served by the current provider registry."""

    def __init__(self, model_id: str | None, message: str | None = None):
        self.model_id = model_id
        super().__init__(
            ApiErrorCode.E_MODEL_NOT_AVAILABLE,
            message or f"Model not available: {model_id}",
        )
