"""
Error taxonomy for the test-session engine.

Services raise these; the handlers registered in ``app.py`` turn them into the
``{"success": false, "message": ..., **context}`` body with the matching status.
"""
from fastapi import status


class SessionError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server error"

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"success": False, "message": self.message, **self.context}


class NotFoundError(SessionError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ForbiddenError(SessionError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class PaymentRequiredError(SessionError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Payment required"


class ValidationFailedError(SessionError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"
