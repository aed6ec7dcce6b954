"""
Domain Exceptions for KonnectSphere
===================================

Services raise these instead of HTTPException so they stay usable from
Celery tasks and the WebSocket loop. The API layer converts any
KonnectSphereError into a JSON error envelope (see app.main).

Usage:
    from app.core.exceptions import PitchNotFoundError

    if not pitch:
        raise PitchNotFoundError(pitch_id)
"""

from typing import Optional, Any, Dict


class KonnectSphereError(Exception):
    """Base exception for all KonnectSphere errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(KonnectSphereError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class AuthorizationError(KonnectSphereError):
    """User not allowed to perform this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized", code: str = "NOT_AUTHORIZED"):
        super().__init__(message, code=code)


class PlanLimitError(AuthorizationError):
    """Current subscription plan does not allow the action"""

    def __init__(self, message: str, plan: Optional[str] = None, limit: Optional[int] = None):
        super().__init__(message, code="PLAN_LIMIT_REACHED")
        self.details = {"plan": plan, "limit": limit}


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(KonnectSphereError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"{resource_type} not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class PitchNotFoundError(ResourceNotFoundError):
    def __init__(self, pitch_id: str):
        super().__init__("Pitch", pitch_id)


class ConversationNotFoundError(ResourceNotFoundError):
    def __init__(self, conversation_id: str):
        super().__init__("Conversation", conversation_id)


# ============================================
# Validation Errors
# ============================================

class ValidationError(KonnectSphereError):
    """Input failed a business rule"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else {}
        )


# ============================================
# Billing Errors
# ============================================

class PaymentError(KonnectSphereError):
    """Payment or subscription state does not allow the operation"""

    status_code = 400

    def __init__(self, message: str, code: str = "PAYMENT_ERROR"):
        super().__init__(message, code=code)


class StripeServiceError(PaymentError):
    """Stripe API call failed"""

    status_code = 502

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Stripe {operation} failed: {reason}", code="STRIPE_ERROR")
        self.details = {"operation": operation}
        self.reason = reason


# ============================================
# Infrastructure Errors
# ============================================

class StorageError(KonnectSphereError):
    """Object storage operation failed"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, code="STORAGE_ERROR", details={"key": key} if key else {})


class EmailDeliveryError(KonnectSphereError):
    """Email could not be delivered"""

    def __init__(self, recipient: str, reason: str = "delivery failed"):
        super().__init__(
            f"Could not send email to {recipient}: {reason}",
            code="EMAIL_FAILED",
            details={"recipient": recipient}
        )


def error_response(error: KonnectSphereError) -> Dict[str, Any]:
    """Build the JSON body returned for a domain error"""
    return {
        "success": False,
        "message": error.message,
        "statusCode": error.status_code,
        "error": error.to_dict()
    }
