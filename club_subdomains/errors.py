"""Error taxonomy shared by the gateway, the identity layer and the HTTP handlers"""

from typing import Optional


class ConfigError(RuntimeError):
    """Raised at startup when required configuration is missing or invalid"""


class AppError(Exception):
    """Base class for errors rendered as JSON ``{"message": ...}`` responses"""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Unauthorized"


class ValidationFailure(AppError):
    status_code = 400
    default_message = "Invalid request"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class QuotaExceeded(AppError):
    status_code = 409
    default_message = "You can only create one subdomain. Contact an admin if you need more."


class UpstreamFailure(AppError):
    """Identity provider or data store call failed or timed out

    ``detail`` carries the upstream error text; it is only shown to callers
    outside production.
    """

    status_code = 500
    default_message = "Upstream service error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class ProviderError(Exception):
    """A call to the identity provider failed (network, timeout or non-2xx)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionError(Exception):
    """The SDK session cookie is missing, unreadable or does not match the callback"""
