"""Account management router (admin)."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from billing.engine import RENEWAL_DAYS
from billing.models import Account, PortalRecord
from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context, require_admin
from services.portal import (
    create_account_service,
    delete_accounts_service,
    delete_account_service,
    extend_accounts_service,
    get_account_service,
    import_customers_service,
    list_accounts_service,
    update_account_service,
)

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_CSV_BYTES = 2 * 1024 * 1024


class AccountWriteRequest(Account):
    id: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=4, max_length=256)

    def to_account(self, account_id: str) -> Account:
        data = self.model_dump(exclude={"password", "password_hash"})
        data["id"] = account_id
        return Account.model_validate(data)


class BulkDeleteRequest(PortalRecord):
    account_ids: List[str] = Field(min_length=1)


class ExtendRequest(PortalRecord):
    account_ids: List[str] = Field(min_length=1)
    days: int = Field(default=RENEWAL_DAYS, ge=1, le=366)


@router.get("")
async def list_accounts(
    q: Optional[str] = Query(default=None, max_length=100),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_accounts_service(db, query=q)


@router.post("")
async def create_account(
    request: AccountWriteRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    account_id = request.id or f"u{uuid.uuid4().hex[:12]}"
    return await create_account_service(request.to_account(account_id), db, credential=request.password)


@router.post("/extend")
async def extend_accounts(
    request: ExtendRequest,
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await extend_accounts_service(
        request.account_ids,
        db,
        days=request.days,
        session_account_id=admin.user_id,
    )


@router.post("/delete")
async def delete_accounts(
    request: BulkDeleteRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await delete_accounts_service(request.account_ids, db)


@router.post("/import_csv")
async def import_customers(
    file: UploadFile = File(...),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    raw = await file.read()
    if len(raw) > MAX_CSV_BYTES:
        raise HTTPException(status_code=413, detail="CSV file is too large")
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=422, detail="CSV file must be UTF-8 encoded") from exc
    return await import_customers_service(text, db)


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_id = ensure_user_scope(auth, account_id)
    return await get_account_service(scoped_id, db)


@router.put("/{account_id}")
async def update_account(
    account_id: str,
    request: AccountWriteRequest,
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if request.id and request.id != account_id:
        raise HTTPException(status_code=422, detail="Account id in body does not match the URL")
    return await update_account_service(
        account_id,
        request.to_account(account_id),
        db,
        credential=request.password,
        session_account_id=admin.user_id,
    )


@router.delete("/{account_id}")
async def delete_account(
    account_id: str,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await delete_account_service(account_id, db)
