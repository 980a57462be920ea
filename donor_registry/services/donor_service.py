from typing import List, Optional, Sequence
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from donor_registry.eligibility import DonorValidationError, duplicate_value_errors
from donor_registry.models.donor import Donor
from donor_registry.schemas.base_schema import SortOrder
from donor_registry.schemas.donor import (
    DonorCreate,
    DonorFilterField,
    DonorSortField,
    DonorUpdate,
)
from donor_registry.utils.logging_config import get_logger

logger = get_logger(__name__)

# wire name -> column name of each unique field
UNIQUE_COLUMNS = {
    "contactNumber": "contact_number",
    "cnicNumber": "cnic_number",
}


def duplicate_fields_from_integrity_error(error: IntegrityError) -> List[str]:
    """Name the unique field(s) a storage-level violation refers to."""
    message = str(error.orig).lower()
    fields = [wire for wire, column in UNIQUE_COLUMNS.items() if column in message]
    return fields or list(UNIQUE_COLUMNS)


class DonorService:
    FILTER_COLUMNS = {
        DonorFilterField.name: Donor.name,
        DonorFilterField.city: Donor.city,
        DonorFilterField.blood_group: Donor.blood_group,
        DonorFilterField.department: Donor.department,
        DonorFilterField.contact_number: Donor.contact_number,
    }

    SORT_COLUMNS = {
        DonorSortField.name: Donor.name,
        DonorSortField.city: Donor.city,
        DonorSortField.blood_group: Donor.blood_group,
        DonorSortField.department: Donor.department,
        DonorSortField.semester: Donor.semester,
        DonorSortField.last_donation: Donor.last_donation,
        DonorSortField.next_available_date: Donor.next_available_date,
        DonorSortField.created_at: Donor.created_at,
    }

    TEXT_SORT_FIELDS = {
        DonorSortField.name,
        DonorSortField.city,
        DonorSortField.blood_group,
        DonorSortField.department,
        DonorSortField.semester,
    }

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_duplicates(
        self,
        contact_number: Optional[str] = None,
        cnic_number: Optional[str] = None,
        exclude_id: Optional[UUID] = None,
    ) -> List[str]:
        """Return the wire names of unique fields already taken by another donor."""
        duplicates = []
        checks = (
            ("contactNumber", Donor.contact_number, contact_number),
            ("cnicNumber", Donor.cnic_number, cnic_number),
        )
        for field, column, value in checks:
            if value is None:
                continue
            query = select(Donor.id).where(column == value)
            if exclude_id is not None:
                query = query.where(Donor.id != exclude_id)
            result = await self.db.execute(query.limit(1))
            if result.scalar_one_or_none() is not None:
                duplicates.append(field)
        return duplicates

    async def create_donor(self, data: DonorCreate) -> Donor:
        duplicates = await self.find_duplicates(data.contact_number, data.cnic_number)
        if duplicates:
            raise DonorValidationError(duplicate_value_errors(duplicates))

        donor = Donor(**data.model_dump())
        self.db.add(donor)
        await self._commit()
        await self.db.refresh(donor)

        logger.info(
            "Donor created",
            extra={"extra_fields": {"event_type": "donor_created", "donor_id": str(donor.id)}},
        )
        return donor

    async def get_donor(self, donor_id: UUID) -> Optional[Donor]:
        result = await self.db.execute(select(Donor).where(Donor.id == donor_id))
        return result.scalar_one_or_none()

    async def get_donor_or_404(self, donor_id: UUID) -> Donor:
        donor = await self.get_donor(donor_id)
        if not donor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Donor not found"
            )
        return donor

    async def list_donors(
        self,
        search: Optional[str] = None,
        filter_by: DonorFilterField = DonorFilterField.name,
        sort_by: Optional[DonorSortField] = None,
        sort_order: SortOrder = SortOrder.ASC,
    ) -> Sequence[Donor]:
        query = select(Donor)

        if search and search.strip():
            column = self.FILTER_COLUMNS[filter_by]
            query = query.where(
                func.lower(column).contains(search.strip().lower(), autoescape=True)
            )

        if sort_by is None:
            query = query.order_by(Donor.created_at.desc())
        else:
            column = self.SORT_COLUMNS[sort_by]
            if sort_by in self.TEXT_SORT_FIELDS:
                column = func.lower(column)
            query = query.order_by(
                column.desc() if sort_order == SortOrder.DESC else column.asc()
            )

        result = await self.db.execute(query)
        return result.scalars().all()

    async def update_donor(self, donor_id: UUID, data: DonorUpdate) -> Donor:
        donor = await self.get_donor_or_404(donor_id)
        changes = data.model_dump(exclude_unset=True)

        duplicates = await self.find_duplicates(
            changes.get("contact_number"), changes.get("cnic_number"), exclude_id=donor.id
        )
        if duplicates:
            raise DonorValidationError(duplicate_value_errors(duplicates))

        for field, value in changes.items():
            setattr(donor, field, value)

        await self._commit()
        await self.db.refresh(donor)

        logger.info(
            "Donor updated",
            extra={
                "extra_fields": {
                    "event_type": "donor_updated",
                    "donor_id": str(donor.id),
                    "fields": sorted(changes),
                }
            },
        )
        return donor

    async def delete_donor(self, donor_id: UUID) -> None:
        donor = await self.get_donor_or_404(donor_id)
        await self.db.delete(donor)
        await self.db.commit()

        logger.info(
            "Donor deleted",
            extra={"extra_fields": {"event_type": "donor_deleted", "donor_id": str(donor_id)}},
        )

    async def _commit(self) -> None:
        """Commit, mapping unique-constraint violations to DuplicateValue errors."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            fields = duplicate_fields_from_integrity_error(e)
            logger.warning(
                "Duplicate key rejected by the database",
                extra={"extra_fields": {"event_type": "duplicate_key", "fields": fields}},
            )
            raise DonorValidationError(duplicate_value_errors(fields)) from e
