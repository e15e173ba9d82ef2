"""Dashboard read models for the customer and admin views."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context, require_admin
from services.portal import admin_dashboard_service, customer_dashboard_service

router = APIRouter()


@router.get("/customer")
async def customer_dashboard(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth, user_id)
    return await customer_dashboard_service(scoped_user_id, db)


@router.get("/admin")
async def admin_dashboard(
    period: Optional[str] = Query(default=None, max_length=64),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_dashboard_service(db, period=period)
