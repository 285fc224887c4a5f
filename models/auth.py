"""Authentication models — verification code records, token claims, API bodies."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from models.base import CamelModel, Identity


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class VerificationCode(BaseModel):
    """A hashed, short-lived one-time code stored per identity."""

    identity: str
    hashed_code: str
    expires_at: float  # unix seconds


class TokenClaims(CamelModel):
    """Claims embedded in a signed session token."""

    email: str
    role: Role
    iat: int | None = None
    exp: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class _EmailBody(CamelModel):
    email: Identity


class RequestCodeRequest(_EmailBody):
    """POST /api/auth/request-code — request body."""


class VerifyCodeRequest(_EmailBody):
    """POST /api/auth/verify — request body."""

    code: str


class TokenResponse(CamelModel):
    token: str
    email: str
    role: Role


class MembershipRequest(_EmailBody):
    """Admin whitelist / admin-set mutation body."""
