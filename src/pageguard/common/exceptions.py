"""PageGuard exception hierarchy.

Every error carries the HTTP status the routers answer with.  Authorization
failures share one message so a caller cannot tell a missing nonce from a
spent one or from one minted for another document.
"""

from typing import Any


class PageGuardError(Exception):
    """Base exception for all PageGuard errors."""

    status_code: int = 500

    def __init__(self, message: str = "", code: str = "PAGEGUARD_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class RateLimitedError(PageGuardError):
    """Raised when a client exceeds its request budget for an endpoint."""

    status_code = 429

    def __init__(self, reset_at=None, message: str = "Rate limit exceeded. Please try again later."):
        self.reset_at = reset_at
        super().__init__(message, code="RATE_LIMITED")


class NonceRequiredError(PageGuardError):
    """Raised when a request carries no nonce at all."""

    status_code = 401

    def __init__(self, message: str = "Nonce required"):
        super().__init__(message, code="NONCE_REQUIRED")


class InvalidNonceError(PageGuardError):
    """Raised when a nonce is unknown, spent, or bound to another document."""

    status_code = 401

    def __init__(self, message: str = "Invalid or expired nonce"):
        super().__init__(message, code="INVALID_NONCE")


class PasswordRequiredError(PageGuardError):
    """Raised when a protected document is requested without a password."""

    status_code = 401

    def __init__(self, message: str = "Password required"):
        super().__init__(message, code="PASSWORD_REQUIRED")

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["requiresPassword"] = True
        return body


class InvalidPasswordError(PageGuardError):
    status_code = 401

    def __init__(self, message: str = "Invalid password"):
        super().__init__(message, code="INVALID_PASSWORD")


class PageSequenceError(PageGuardError):
    """Raised when page > 1 is requested before page 1 opened the session."""

    status_code = 400

    def __init__(self, message: str = "Must request page 1 first"):
        super().__init__(message, code="PAGE_SEQUENCE")


class InvalidPageError(PageGuardError):
    status_code = 400

    def __init__(self, message: str = "Invalid page number"):
        super().__init__(message, code="INVALID_PAGE")


class InvalidEventError(PageGuardError):
    status_code = 400

    def __init__(self, message: str = "Unsupported client event"):
        super().__init__(message, code="INVALID_EVENT")


class DocumentNotFoundError(PageGuardError):
    """Raised when a document is missing or inactive."""

    status_code = 404

    def __init__(self, message: str = "Document not found"):
        super().__init__(message, code="NOT_FOUND")


class PageNotFoundError(PageGuardError):
    status_code = 404

    def __init__(self, page: int, total_pages: int):
        self.page = page
        self.total_pages = total_pages
        unit = "page" if total_pages == 1 else "pages"
        super().__init__(
            f"Page {page} does not exist. Document has {total_pages} {unit}.",
            code="PAGE_NOT_FOUND",
        )


class DocumentUnavailableError(PageGuardError):
    """Raised when stored bytes are missing or fail to decrypt."""

    status_code = 500

    def __init__(self, message: str = "Document file not available"):
        super().__init__(message, code="DOCUMENT_UNAVAILABLE")


class RenderError(PageGuardError):
    status_code = 500

    def __init__(self, message: str = "Failed to render page"):
        super().__init__(message, code="RENDER_FAILED")
