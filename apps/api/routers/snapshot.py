"""Snapshot export/import router (admin backup and restore)."""

from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_admin
from services.portal import export_snapshot_service, import_snapshot_service

router = APIRouter()


@router.get("/export")
async def export_snapshot(
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Both stores under ``{accounts, invoices, exportedAt}``, credential hashes included."""
    return await export_snapshot_service(db)


@router.post("/import")
async def import_snapshot(
    payload: Any = Body(...),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Replace both stores; a malformed payload is rejected whole with 422."""
    return await import_snapshot_service(payload, db)
