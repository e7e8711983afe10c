class DiagnosticsAppError(Exception):
    """Base exception for the diagnostics backend.

    ``status_code`` is what the global exception handler answers with.
    """

    status_code: int = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class NotFoundError(DiagnosticsAppError):
    """Raised when a requested record does not exist (or is inactive)."""

    status_code = 404


class PermissionDeniedError(DiagnosticsAppError):
    """Raised when a caller targets a resource it does not own or may not touch."""

    status_code = 403


class DuplicateResponseError(PermissionDeniedError):
    """Raised when a user answers the same questionnaire a second time."""

    pass


class ValidationError(DiagnosticsAppError):
    """Raised when a request is well-formed but violates a business rule."""

    status_code = 400


class LLMGatewayError(DiagnosticsAppError):
    """Raised when every configured model failed to answer."""

    status_code = 502

    def __init__(self, detail: str, attempts: list[dict] | None = None):
        self.attempts = attempts or []
        super().__init__(detail)


class ActionPlanGenerationError(DiagnosticsAppError):
    """Raised when the LLM answer cannot be turned into an action plan."""

    status_code = 502


class AuthenticationError(DiagnosticsAppError):
    """Raised when login credentials do not match an account."""

    status_code = 401


class ConflictError(DiagnosticsAppError):
    """Raised when a create would duplicate a unique record (e.g. an email)."""

    status_code = 409
