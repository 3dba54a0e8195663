"""Error kinds and the result envelope returned by the payment service."""
from typing import Any, Optional

from pydantic import BaseModel


class PaymentError(Exception):
    kind = "payment_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    kind = "validation_error"
    status_code = 400


class ConflictError(PaymentError):
    kind = "conflict"
    status_code = 409


class NotFoundError(PaymentError):
    kind = "not_found"
    status_code = 404


class GatewayError(PaymentError):
    kind = "gateway_error"
    status_code = 502


class SignatureError(PaymentError):
    kind = "signature_error"
    status_code = 401


class StateError(PaymentError):
    kind = "invalid_state"
    status_code = 409


class CredentialError(Exception):
    """Stored credentials could not be decrypted."""


ERROR_STATUS_CODES = {
    cls.kind: cls.status_code
    for cls in (ValidationError, ConflictError, NotFoundError, GatewayError, SignatureError, StateError)
}


class ServiceResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: PaymentError) -> "ServiceResult":
        return cls(success=False, error=exc.message, error_kind=exc.kind)

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return ERROR_STATUS_CODES.get(self.error_kind, 500)
