"""Custom exception hierarchy for the ICS TA Bot service."""

from errors.exceptions import (
    AuthError,
    CodeExpired,
    DeliveryFailed,
    GenerationError,
    IngestionError,
    InvalidCode,
    InvalidToken,
    NoCodeFound,
    NotAuthorized,
    QuotaExceeded,
    ReportNotFound,
    TABotError,
    VerificationError,
)

__all__ = [
    "AuthError",
    "CodeExpired",
    "DeliveryFailed",
    "GenerationError",
    "IngestionError",
    "InvalidCode",
    "InvalidToken",
    "NoCodeFound",
    "NotAuthorized",
    "QuotaExceeded",
    "ReportNotFound",
    "TABotError",
    "VerificationError",
]
