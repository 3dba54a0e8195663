from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.errors import PaymentError
from app.services.saved_vpas import SavedVpaService
from app.schemas.saved_vpa import (
    SavedVpaCreate,
    SavedVpaUpdate,
    SavedVpaResponse,
    SavedVpaListResponse,
)

router = APIRouter()


@router.get("/{user_id}/vpas", response_model=SavedVpaListResponse)
async def list_saved_vpas(
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Saved VPAs for checkout, the default one first."""
    service = SavedVpaService(db)
    vpas = await service.list_vpas(user_id)
    return SavedVpaListResponse(vpas=[SavedVpaResponse.model_validate(v) for v in vpas])


@router.post("/{user_id}/vpas", response_model=SavedVpaResponse, status_code=201)
async def add_saved_vpa(
    user_id: str,
    data: SavedVpaCreate,
    db: AsyncSession = Depends(get_db),
):
    service = SavedVpaService(db)
    try:
        saved = await service.add_vpa(user_id, data.vpa, is_default=data.is_default)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SavedVpaResponse.model_validate(saved)


@router.put("/{user_id}/vpas/{vpa_id}", response_model=SavedVpaResponse)
async def update_saved_vpa(
    user_id: str,
    vpa_id: str,
    data: SavedVpaUpdate,
    db: AsyncSession = Depends(get_db),
):
    service = SavedVpaService(db)
    try:
        saved = await service.set_default(user_id, vpa_id, data.is_default)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SavedVpaResponse.model_validate(saved)


@router.delete("/{user_id}/vpas/{vpa_id}")
async def delete_saved_vpa(
    user_id: str,
    vpa_id: str,
    db: AsyncSession = Depends(get_db),
):
    service = SavedVpaService(db)
    try:
        await service.delete_vpa(user_id, vpa_id)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True}
