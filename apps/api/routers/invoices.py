"""Invoice router: listing, settlement, monthly generation and extra charges."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from billing.models import Invoice, InvoiceStatus, PortalRecord
from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context, require_admin
from services.portal import (
    add_charge_service,
    delete_invoice_service,
    generate_invoices_service,
    list_invoices_service,
    record_payment_service,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class InvoiceWriteRequest(Invoice):
    id: Optional[str] = None

    def to_invoice(self, invoice_id: str) -> Invoice:
        data = self.model_dump()
        data["id"] = invoice_id
        return Invoice.model_validate(data)


class GenerateInvoicesRequest(PortalRecord):
    period: str = Field(min_length=1, max_length=64)
    account_ids: Optional[List[str]] = None


class ChargeRequest(PortalRecord):
    user_id: str
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=200)
    billing_month: Optional[str] = Field(default=None, max_length=64)


@router.get("")
async def list_invoices(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    status: Optional[InvoiceStatus] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Admins see every invoice; customers only their own, newest first."""
    if auth.is_admin:
        return await list_invoices_service(db, user_id=user_id, status=status)
    scoped_user_id = ensure_user_scope(auth, user_id)
    return await list_invoices_service(db, user_id=scoped_user_id, status=status, sort_newest_first=True)


@router.post("")
async def create_invoice(
    request: InvoiceWriteRequest,
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    invoice = request.to_invoice(request.id or str(uuid.uuid4()))
    return await record_payment_service(invoice, db, session_account_id=admin.user_id)


@router.post("/generate")
async def generate_invoices(
    request: GenerateInvoicesRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await generate_invoices_service(request.period, db, account_ids=request.account_ids)


@router.post("/charge")
async def add_charge(
    request: ChargeRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await add_charge_service(
        request.user_id,
        request.amount,
        request.description,
        db,
        period=request.billing_month,
    )


@router.put("/{invoice_id}")
async def upsert_invoice(
    invoice_id: str,
    request: InvoiceWriteRequest,
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if request.id and request.id != invoice_id:
        raise HTTPException(status_code=422, detail="Invoice id in body does not match the URL")
    return await record_payment_service(request.to_invoice(invoice_id), db, session_account_id=admin.user_id)


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: str,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await delete_invoice_service(invoice_id, db)
