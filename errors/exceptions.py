"""Domain-specific exceptions for the ICS TA Bot service.

These exceptions let the service layer report *what* went wrong while the
API layer decides how much of it the caller gets to see (verification
failures, for example, all collapse into a single generic 401).
"""

from __future__ import annotations


class TABotError(Exception):
    """Base class for all service errors."""


# ── Authentication ───────────────────────────────────────────


class AuthError(TABotError):
    """Base class for authentication failures."""


class NotAuthorized(AuthError):
    """The identity is not on the whitelist."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"Email not authorized: {identity}")


class VerificationError(AuthError):
    """A one-time verification code could not be accepted."""

    def __init__(self, identity: str, message: str) -> None:
        self.identity = identity
        super().__init__(message)


class NoCodeFound(VerificationError):
    def __init__(self, identity: str) -> None:
        super().__init__(identity, "No verification code found")


class CodeExpired(VerificationError):
    def __init__(self, identity: str) -> None:
        super().__init__(identity, "Verification code expired")


class InvalidCode(VerificationError):
    def __init__(self, identity: str) -> None:
        super().__init__(identity, "Invalid verification code")


class InvalidToken(AuthError):
    """A session token failed signature or expiry checks."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class DeliveryFailed(TABotError):
    """The out-of-band delivery of a verification code failed."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"Failed to send verification email to {identity}")


# ── Quota ────────────────────────────────────────────────────


class QuotaExceeded(TABotError):
    """A non-admin identity has used up today's query allowance."""

    def __init__(self, identity: str, limit: int, used: int) -> None:
        self.identity = identity
        self.limit = limit
        self.used = used
        super().__init__(
            f"Daily query limit of {limit} reached. "
            "Please try again tomorrow (limits reset at 00:00 UTC)."
        )


# ── RAG ──────────────────────────────────────────────────────


class IngestionError(TABotError):
    """File read, parse, embedding or upsert failure during ingestion."""


class GenerationError(TABotError):
    """Embedding, retrieval or chat provider failure during a live query.

    Carries the pipeline ``stage`` that failed so operators can tell an
    embedding outage from a chat-model outage in the logs.
    """

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"{stage} failed: {message}")


# ── Feedback ─────────────────────────────────────────────────


class ReportNotFound(TABotError):
    def __init__(self, report_id: str) -> None:
        self.report_id = report_id
        super().__init__(f"Report not found: {report_id}")
