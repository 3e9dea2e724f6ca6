"""Escrow service error hierarchy."""

from typing import Any


class EscrowError(Exception):
    """Base exception for escrow service errors."""

    code = "ESCROW_INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(EscrowError):
    """Invalid request parameters."""

    code = "ESCROW_INVALID_REQUEST"
    status_code = 400


class MissingEvidenceError(ValidationError):
    """Required evidence role was not uploaded."""

    code = "ESCROW_MISSING_EVIDENCE"
    status_code = 400


class InvalidMediaTypeError(ValidationError):
    """Uploaded evidence has a media type outside the allow-list."""

    code = "ESCROW_INVALID_MEDIA_TYPE"
    status_code = 400


class PayloadTooLargeError(EscrowError):
    """Uploaded evidence exceeds the per-file size cap."""

    code = "ESCROW_PAYLOAD_TOO_LARGE"
    status_code = 413


class ConflictError(EscrowError):
    """Resource conflict (e.g., idempotency key still in flight)."""

    code = "ESCROW_CONFLICT"
    status_code = 409


class DependencyError(EscrowError):
    """External dependency failure."""

    code = "ESCROW_DEPENDENCY_FAILURE"
    status_code = 502


class InferenceError(DependencyError):
    """The multimodal inference service failed or replied with garbage."""

    code = "ESCROW_INFERENCE_FAILURE"
    status_code = 502


class LedgerError(DependencyError):
    """A ledger RPC call, submission or confirmation failed."""

    code = "ESCROW_LEDGER_FAILURE"
    status_code = 502


class InsufficientFundsError(LedgerError):
    """Custodial balance cannot cover the transfer plus fee reserve."""

    code = "ESCROW_INSUFFICIENT_FUNDS"
    status_code = 502

    def __init__(
        self,
        message: str,
        balance_lamports: int,
        required_lamports: int,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            details={
                **(details or {}),
                "balance_lamports": balance_lamports,
                "required_lamports": required_lamports,
            },
        )
        self.balance_lamports = balance_lamports
        self.required_lamports = required_lamports


class InternalError(EscrowError):
    """Internal server error."""

    code = "ESCROW_INTERNAL_ERROR"
    status_code = 500


class StartupConfigurationError(EscrowError):
    """Mandatory configuration is missing or malformed at process start."""

    code = "ESCROW_STARTUP_CONFIGURATION"
    status_code = 500


ERROR_STATUS_MAP: dict[type[EscrowError], int] = {
    ValidationError: 400,
    MissingEvidenceError: 400,
    InvalidMediaTypeError: 400,
    PayloadTooLargeError: 413,
    ConflictError: 409,
    DependencyError: 502,
    InferenceError: 502,
    LedgerError: 502,
    InsufficientFundsError: 502,
    InternalError: 500,
    StartupConfigurationError: 500,
}


def get_status_code(error: EscrowError) -> int:
    """Get HTTP status code for error."""
    return ERROR_STATUS_MAP.get(type(error), 500)
