from datetime import date, timedelta
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from donor_registry.models.donor import Donor
from donor_registry.schemas.donor import DonorStats
from donor_registry.utils.logging_config import get_logger

logger = get_logger(__name__)

RECENT_DONATION_DAYS = 30


class DonorStatsService:
    """Aggregates shown on the dashboard cards and charts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_stats(self, today: Optional[date] = None) -> DonorStats:
        today = today or date.today()

        total = await self._count()
        recent = await self._count(
            Donor.last_donation >= today - timedelta(days=RECENT_DONATION_DAYS)
        )
        eligible = await self._count(Donor.is_eligible(today))

        stats = DonorStats(
            total_donors=total,
            recent_donations=recent,
            eligible_donors=eligible,
            blood_group_count=await self._group_count(Donor.blood_group),
            city_count=await self._group_count(Donor.city),
        )
        logger.debug(f"Donor stats computed: total={total} recent={recent}")
        return stats

    async def _count(self, *conditions) -> int:
        query = select(func.count(Donor.id))
        if conditions:
            query = query.where(*conditions)
        result = await self.db.execute(query)
        return result.scalar_one()

    async def _group_count(self, column) -> Dict[str, int]:
        result = await self.db.execute(
            select(column, func.count(Donor.id)).group_by(column).order_by(column)
        )
        return {key: count for key, count in result.all()}
