"""
Service Errors

Exception taxonomy shared by the services and mapped to HTTP responses by
the API layer. Each class carries the status code it is surfaced with.
"""

from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Base class for all service errors"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(StorefrontError):
    """Malformed or semantically invalid input"""

    status_code = 400


class CartValidationError(ValidationError):
    """Cart no longer matches current inventory"""

    def __init__(self, message: str, issues: List[Any]):
        super().__init__(
            message,
            details={"errors": [issue.model_dump(mode="json", by_alias=True) for issue in issues]},
        )
        self.issues = issues


class PaymentError(ValidationError):
    """Payment provider refused the request or could not be reached"""


class SnapshotDecodeError(StorefrontError):
    """Stored address snapshot does not match its schema"""


class AuthorizationError(StorefrontError):
    """Caller is not authenticated or lacks permission"""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(StorefrontError):
    """Referenced entity does not exist"""

    status_code = 404
