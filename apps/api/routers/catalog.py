"""Package catalog router."""

from fastapi import APIRouter, HTTPException

from services.portal import catalog

router = APIRouter()


@router.get("/packages")
async def list_packages():
    packages = catalog.list()
    return {"items": [package.to_record() for package in packages], "count": len(packages)}


@router.get("/packages/{package_id}")
async def get_package(package_id: str):
    package = catalog.find_package(package_id)
    if package is None:
        raise HTTPException(status_code=404, detail="Package not found")
    return package.to_record()
