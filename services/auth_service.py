"""Email one-time-code authentication.

Flow:
  1. ``request_verification(email)`` — whitelisted identities get a 6-digit
     code by email.  Only a bcrypt hash of the code is stored, with an
     explicit expiry 10 minutes out.  A new request overwrites any earlier
     code for the same identity.
  2. ``verify_code(email, code)`` — consumes the code on success and returns
     a signed JWT carrying ``{email, role}``.  A wrong code leaves the record
     in place so the user can retry within the window; an expired one is
     deleted.
  3. ``verify_token(token)`` — stateless check of signature and expiry.

Every check here is fail-closed: store errors propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Callable

import bcrypt
import jwt

from errors import (
    CodeExpired,
    DeliveryFailed,
    InvalidCode,
    InvalidToken,
    NoCodeFound,
    NotAuthorized,
)
from models.auth import Role, TokenClaims, VerificationCode
from services.credential_store import CredentialStore
from services.email_service import EmailService

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999


def generate_verification_code() -> str:
    """Uniform random 6-digit code in [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class AuthService:
    """Verification-code login and session-token issuance."""

    def __init__(
        self,
        credentials: CredentialStore,
        email_service: EmailService,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        token_ttl_seconds: int = 24 * 3600,
        code_ttl_seconds: int = 10 * 60,
        bcrypt_rounds: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._email = email_service
        self._jwt_secret = jwt_secret
        self._jwt_algorithm = jwt_algorithm
        self._token_ttl = token_ttl_seconds
        self._code_ttl = code_ttl_seconds
        self._bcrypt_rounds = bcrypt_rounds
        self._clock = clock

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    # ── Code hashing ─────────────────────────────────────────

    async def _hash_code(self, code: str) -> str:
        salt = bcrypt.gensalt(rounds=self._bcrypt_rounds)
        hashed = await asyncio.to_thread(bcrypt.hashpw, code.encode(), salt)
        return hashed.decode()

    async def _check_code(self, code: str, hashed: str) -> bool:
        try:
            return await asyncio.to_thread(bcrypt.checkpw, code.encode(), hashed.encode())
        except ValueError:
            logger.warning("Stored verification hash is malformed")
            return False

    # ── Verification flow ────────────────────────────────────

    async def request_verification(self, identity: str) -> None:
        """Issue and deliver a one-time code.

        Raises:
            NotAuthorized: identity is not whitelisted.
            DeliveryFailed: the email could not be sent (the code stays stored).
        """
        logger.info("Verification requested for %s", identity)
        if not await self._credentials.is_whitelisted(identity):
            logger.warning("Email not authorized: %s", identity)
            raise NotAuthorized(identity)

        code = generate_verification_code()
        now = self._clock()
        record = VerificationCode(
            identity=identity,
            hashed_code=await self._hash_code(code),
            expires_at=now + self._code_ttl,
        )
        await self._credentials.put_code(record, now=now)
        logger.info("Generated verification code for %s", identity)

        if not await self._email.send_verification_code(identity, code):
            raise DeliveryFailed(identity)

    async def verify_code(self, identity: str, code: str) -> str:
        """Consume a code and return a signed session token."""
        record = await self._credentials.get_code(identity)
        if record is None:
            logger.info("No verification code found for %s", identity)
            raise NoCodeFound(identity)

        if self._clock() > record.expires_at:
            await self._credentials.delete_code(identity)
            logger.info("Verification code expired for %s", identity)
            raise CodeExpired(identity)

        if not await self._check_code(code.strip(), record.hashed_code):
            logger.info("Invalid verification code for %s", identity)
            raise InvalidCode(identity)

        await self._credentials.delete_code(identity)
        role = Role.ADMIN if await self._credentials.is_admin(identity) else Role.USER
        token = self.issue_token(identity, role)
        logger.info("Verified %s (role=%s), token issued", identity, role.value)
        return token

    # ── Tokens ───────────────────────────────────────────────

    def issue_token(self, identity: str, role: Role) -> str:
        now = int(self._clock())
        payload = {
            "email": identity,
            "role": role.value,
            "iat": now,
            "exp": now + self._token_ttl,
        }
        return jwt.encode(payload, self._jwt_secret, algorithm=self._jwt_algorithm)

    def verify_token(self, token: str) -> TokenClaims:
        """Decode and validate a session token.

        Signature and structure are checked by PyJWT; expiry is checked
        against the service clock so it stays consistent with code expiry.
        """
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[self._jwt_algorithm],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
            claims = TokenClaims.model_validate(payload)
        except (jwt.PyJWTError, ValueError) as exc:
            raise InvalidToken() from exc

        if claims.exp is None or self._clock() >= claims.exp:
            raise InvalidToken("Token expired")
        return claims
