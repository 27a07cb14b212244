from rest_framework import status
from rest_framework.response import Response


class CommerceError(Exception):
    """Base exception for storefront operations that must reach the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def as_dict(self):
        payload = {"detail": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(CommerceError):
    """Malformed input: missing fields, bad postal code, non-positive quantity."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(CommerceError):
    """A referenced product, variant, coupon, cart or pickup point does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class BusinessRuleError(CommerceError):
    """The request is well formed but the current state does not allow it."""

    status_code = status.HTTP_409_CONFLICT
    code = "business_rule"


class InternalError(CommerceError):
    """Storage or downstream failure. The message never carries storage details."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, message="Internal server error", **extra):
        super().__init__(message, **extra)


def error_response(exc):
    return Response(exc.as_dict(), status=exc.status_code)
