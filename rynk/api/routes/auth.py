from __future__ import annotations

from fastapi import APIRouter, Request

from rynk.models.schemas import MobileSignInRequest, RefreshRequest
from rynk.services import mobile_auth

router = APIRouter(prefix="/api/auth/mobile", tags=["auth"])


@router.post("")
async def sign_in(body: MobileSignInRequest):
    """Exchange a provider credential for an access/refresh token pair."""
    return await mobile_auth.sign_in(
        body.provider,
        id_token=body.id_token,
        email=body.email,
        name=body.name,
        image=body.image,
        provider_account_id=body.provider_account_id,
    )


@router.get("")
async def validate_session(request: Request):
    user, session = await mobile_auth.validate_access_token(mobile_auth.bearer_token(request))
    return {
        "user": mobile_auth.public_user(user),
        "access_token_expires_at": session["access_token_expires_at"].isoformat(),
    }


@router.delete("")
async def sign_out(request: Request):
    await mobile_auth.sign_out(mobile_auth.bearer_token(request))
    return {"success": True}


@router.post("/refresh")
async def refresh(body: RefreshRequest):
    return await mobile_auth.refresh_session(body.refresh_token)
