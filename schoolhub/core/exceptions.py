"""
Custom exceptions for SchoolHub
===============================

Services and dependencies raise these instead of building HTTP responses
themselves. The handlers registered in ``schoolhub.main`` turn them into the
uniform ``{"error": message}`` body with the matching status code.

Usage:
    from schoolhub.core.exceptions import NotFoundError

    if not book:
        raise NotFoundError("book not found")
"""

from typing import Any, Dict


class SchoolHubError(Exception):
    """Base exception for all SchoolHub errors"""

    status_code = 500

    def __init__(self, message: str = "internal server error"):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationFailed(SchoolHubError):
    """Request is well formed but breaks a business rule"""

    status_code = 400


class AuthenticationError(SchoolHubError):
    """Missing or invalid credentials"""

    status_code = 401

    def __init__(self, message: str = "token invalid"):
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self):
        super().__init__("token expired")


class PermissionDenied(SchoolHubError):
    """Authenticated user is not allowed to touch the target resource"""

    status_code = 403

    def __init__(self, message: str = "permission denied"):
        super().__init__(message)


class NotFoundError(SchoolHubError):
    status_code = 404


# ============================================
# Lending
# ============================================

class BorrowLimitReached(ValidationFailed):
    def __init__(self, limit: int):
        super().__init__(f"You can only borrow up to {limit} books at a time.")
        self.limit = limit


class BookAlreadyLent(ValidationFailed):
    def __init__(self):
        super().__init__("book is already lent out")


class BookNotLent(ValidationFailed):
    def __init__(self):
        super().__init__("book is not currently lent out")


# ============================================
# Uploads
# ============================================

class InvalidUpload(ValidationFailed):
    """Uploaded file failed type or size validation"""


class StorageError(SchoolHubError):
    """Media backend failed to store or delete an object"""
