"""Authentication API — email one-time code login.

Endpoints:
- ``POST /api/auth/request-code`` — email a 6-digit code to a whitelisted address
- ``POST /api/auth/verify``       — exchange the code for a session token
- ``GET  /api/auth/me``           — claims of the current token
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_services
from errors import DeliveryFailed, NotAuthorized, VerificationError
from models.auth import RequestCodeRequest, TokenClaims, TokenResponse, VerifyCodeRequest
from services.container import Services
from ta_backend.auth import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# Same message for every verification failure so callers cannot probe
# whether a code exists, expired or was wrong.
_VERIFY_FAILED = "Invalid or expired verification code"


@router.post("/request-code")
async def request_code(
    req: RequestCodeRequest,
    services: Services = Depends(get_services),
):
    try:
        await services.auth.request_verification(req.email)
    except NotAuthorized:
        raise HTTPException(
            status_code=403,
            detail="This email is not authorized to use the ICS TA Bot",
        )
    except DeliveryFailed:
        raise HTTPException(
            status_code=502,
            detail="Failed to send verification email. Please try again later.",
        )
    return {"message": "Verification code sent to your email"}


@router.post("/verify", response_model=TokenResponse)
async def verify(
    req: VerifyCodeRequest,
    services: Services = Depends(get_services),
):
    try:
        token = await services.auth.verify_code(req.email, req.code)
    except VerificationError as exc:
        logger.info("Verification failed for %s: %s", req.email, exc)
        raise HTTPException(status_code=401, detail=_VERIFY_FAILED)

    claims = services.auth.verify_token(token)
    return TokenResponse(token=token, email=claims.email, role=claims.role)


@router.get("/me", response_model=TokenClaims)
async def me(user: TokenClaims = Depends(get_current_user)):
    return user
