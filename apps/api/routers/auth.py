"""
Authentication router: sign-in through the identity collaborator and session lookup.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.identity import AuthenticationError, LocalIdentityProvider
from services.portal import get_account_service, public_account
from services.session_token import create_session_token
from services.snapshot_store import load_ledger

router = APIRouter()
logger = logging.getLogger(__name__)


class SignInRequest(BaseModel):
    identifier: str = Field(min_length=1, max_length=254)
    credential: str = Field(min_length=1, max_length=256)


class SignInResponse(BaseModel):
    user_id: str
    role: str
    session_token: str
    session_expires_at: int
    account: dict


@router.post("/sign-in", response_model=SignInResponse)
async def sign_in(
    request: SignInRequest,
    _rate_limit: None = Depends(rate_limit("auth_sign_in", limit=20, window_seconds=300)),
    db: AsyncSession = Depends(get_db),
):
    """Exchange an identifier/credential pair for a session token."""
    ledger = await load_ledger(db)
    provider = LocalIdentityProvider(ledger.accounts, admin_emails=settings.ADMIN_EMAILS)
    try:
        account = await asyncio.to_thread(provider.sign_in, request.identifier, request.credential)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    session = create_session_token(account.id, account.email or None, role=account.role)
    logger.info("Account %s signed in as %s", account.id, account.role)
    return SignInResponse(
        user_id=account.id,
        role=account.role,
        session_token=session["token"],
        session_expires_at=session["expires_at"],
        account=public_account(account),
    )


@router.get("/me")
async def get_current_account(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Current account as stored, with the session role."""
    account = await get_account_service(auth.user_id, db)
    return {"account": account, "role": auth.role}


@router.post("/logout")
async def logout(_auth: AuthContext = Depends(get_auth_context)):
    """Frontend-managed logout acknowledgment endpoint."""
    return {"message": "Logged out successfully"}
