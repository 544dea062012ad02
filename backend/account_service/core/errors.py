"""API error classes.

HTTP status codes and machine-readable error codes for the account
lifecycle endpoints.

Errors that the user can correct on the originating form (bad input,
stale CSRF token, duplicate email) carry a ``redirect_to`` hint in their
details so the client can go back to that form, keeping any context
(e.g. the reset token) in the URL.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def redirect_to(self, url: str) -> "APIError":
        """Attach the form URL the client should return to.

        Returns:
            The same error, for ``raise exc.redirect_to(...)`` chaining.
        """
        self.details = [*(self.details or []), {"redirect_to": url}]
        return self


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class CsrfError(APIError):
    """Submitted CSRF token missing or not valid for the form (400)."""

    def __init__(self, message: str = "Invalid CSRF token") -> None:
        super().__init__(
            code="CSRF_INVALID",
            message=message,
            status_code=400,
        )


class InvalidCredentialsError(APIError):
    """Login failed (401).

    Same message for unknown email and wrong password.
    """

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message=message,
            status_code=401,
        )


class AccessDeniedError(APIError):
    """Not allowed to perform the action (403).

    Raised for expired tokens on confirmation and password reset.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="ACCESS_DENIED",
            message=message,
            status_code=403,
        )


class AccountStatusError(APIError):
    """Account state blocks authentication (403).

    Raised by the pre-authentication gate for unverified accounts.

    Attributes:
        reason: Short status keyword (e.g., "unverified").
    """

    def __init__(
        self,
        reason: str,
        message: str = "You must confirm your email before signing in.",
    ) -> None:
        self.reason = reason
        super().__init__(
            code="ACCOUNT_NOT_VERIFIED" if reason == "unverified" else "ACCOUNT_STATUS",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when a required resource (or query parameter) doesn't exist.
    """

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class InvalidTokenError(NotFoundError):
    """Token lookup failed or token already used (404).

    Unknown and already-used tokens share this outward signal.
    """

    def __init__(self, message: str = "Invalid token") -> None:
        APIError.__init__(
            self,
            code="INVALID_TOKEN",
            message=message,
            status_code=404,
        )


class AccountNotFoundError(NotFoundError):
    """No account registered with the given email (404).

    Only the resend-confirmation flow reports this. Forgot-password
    never does.
    """

    def __init__(self, message: str = "No account is registered with this email") -> None:
        APIError.__init__(
            self,
            code="ACCOUNT_NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Use for duplicate entries, conflicting state, etc.
    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class DuplicateEmailError(ConflictError):
    """Email already registered (409)."""

    def __init__(self, message: str = "This email is already registered") -> None:
        super().__init__(code="EMAIL_ALREADY_EXISTS", message=message)


class DeliveryError(APIError):
    """Transactional email could not be delivered (502).

    Raised by the Mailer. The surrounding transaction is rolled back.
    """

    def __init__(self, message: str = "The email could not be sent") -> None:
        super().__init__(
            code="DELIVERY_FAILED",
            message=message,
            status_code=502,
        )
