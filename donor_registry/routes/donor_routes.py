from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from donor_registry.dependencies import get_db
from donor_registry.eligibility import normalize_and_validate, validate_partial
from donor_registry.schemas.base_schema import SortOrder
from donor_registry.schemas.donor import (
    DonorFilterField,
    DonorResponse,
    DonorSortField,
    DonorStats,
)
from donor_registry.services.donor_service import DonorService
from donor_registry.services.export_service import donors_to_csv
from donor_registry.services.stats_service import DonorStatsService
from donor_registry.utils.security import get_current_admin

router = APIRouter(
    prefix="/donors",
    tags=["donors"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=List[DonorResponse])
async def list_donors(
    search: Optional[str] = Query(None, description="Case-insensitive substring"),
    filter_by: DonorFilterField = Query(
        DonorFilterField.name, description="Field the search term applies to"
    ),
    sort_by: Optional[DonorSortField] = Query(
        None, description="Field to sort by (newest first when omitted)"
    ),
    sort_order: SortOrder = Query(SortOrder.ASC),
    db: AsyncSession = Depends(get_db),
):
    service = DonorService(db)
    return await service.list_donors(search, filter_by, sort_by, sort_order)


@router.get("/stats", response_model=DonorStats)
async def donor_stats(db: AsyncSession = Depends(get_db)):
    return await DonorStatsService(db).get_stats()


@router.get("/export/csv")
async def export_donors_csv(
    search: Optional[str] = Query(None),
    filter_by: DonorFilterField = Query(DonorFilterField.name),
    sort_by: Optional[DonorSortField] = Query(None),
    sort_order: SortOrder = Query(SortOrder.ASC),
    db: AsyncSession = Depends(get_db),
):
    """Download the (optionally filtered) donor list as CSV"""
    donors = await DonorService(db).list_donors(search, filter_by, sort_by, sort_order)
    return Response(
        content=donors_to_csv(donors),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="donors.csv"'},
    )


@router.get("/{donor_id}", response_model=DonorResponse)
async def get_donor(donor_id: UUID, db: AsyncSession = Depends(get_db)):
    return await DonorService(db).get_donor_or_404(donor_id)


@router.post("", response_model=DonorResponse, status_code=status.HTTP_201_CREATED)
async def create_donor(
    payload: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    data = normalize_and_validate(payload)
    return await DonorService(db).create_donor(data)


@router.put("/{donor_id}", response_model=DonorResponse)
async def update_donor(
    donor_id: UUID,
    payload: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    service = DonorService(db)
    await service.get_donor_or_404(donor_id)
    data = validate_partial(payload)
    return await service.update_donor(donor_id, data)


@router.delete("/{donor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_donor(donor_id: UUID, db: AsyncSession = Depends(get_db)):
    await DonorService(db).delete_donor(donor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
