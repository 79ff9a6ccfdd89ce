"""Custom exceptions for the Acquisitions API."""


class AcquisitionsException(Exception):
    """Base class for application exceptions with an HTTP status code.

    Subclasses set ``status_code`` and ``error`` so the exception handlers
    in ``main`` can render a consistent JSON body.
    """
    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str = "Internal error"):
        self.message = message
        super().__init__(message)


class AuthenticationError(AcquisitionsException):
    """Raised when a bearer token is missing, malformed or expired.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    error = "Unauthorized"

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class PermissionDeniedError(AcquisitionsException):
    """Raised when an authenticated principal lacks the required role.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403
    error = "Forbidden"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class InvalidCredentialsError(AcquisitionsException):
    """Raised on sign-in with an unknown email or a wrong password.

    Both cases share one message so the response does not reveal which
    emails are registered.
    """
    status_code = 401
    error = "Invalid email or password"

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class UserNotFoundError(AcquisitionsException):
    status_code = 404
    error = "User not found"

    def __init__(self, user_id: int | None = None):
        self.user_id = user_id
        super().__init__("User not found")


class UserAlreadyExistsError(AcquisitionsException):
    status_code = 409
    error = "User with this email already exists"

    def __init__(self, email: str | None = None):
        self.email = email
        super().__init__("User with this email already exists")


class PolicyEngineError(AcquisitionsException):
    """Raised when the request policy evaluator itself fails.

    Covers store errors and evaluation timeouts. The security middleware
    turns it into HTTP 500 and never lets the request through.
    """
    status_code = 500
    error = "Internal Server Error"
