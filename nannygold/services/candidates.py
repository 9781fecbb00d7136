"""Nanny candidate selection for new bookings and reassignments"""

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import ApprovalStatus, Booking, LivingArrangement, Nanny

logger = logging.getLogger(__name__)


def _normalized(values: Iterable[str] | None) -> set[str]:
    return {str(v).strip().lower().replace("-", "_") for v in (values or []) if v}


def nanny_supports(
    nanny: Nanny,
    booking_type: str,
    living_arrangement: LivingArrangement | None = None,
    required_skills: Iterable[str] | None = None,
) -> bool:
    """Capability check: category, living arrangement and every required skill"""
    categories = _normalized(nanny.service_categories) | _normalized(nanny.admin_assigned_categories)
    if booking_type not in categories:
        return False

    # Live-out is the default capability; live-in must be offered explicitly
    if living_arrangement is LivingArrangement.LIVE_IN:
        if LivingArrangement.LIVE_IN.value not in _normalized(nanny.living_arrangements):
            return False

    skills = _normalized(nanny.skills)
    for skill in _normalized(required_skills):
        if not any(skill in have for have in skills):
            return False
    return True


def snapshot(nanny: Nanny) -> dict[str, Any]:
    """Frozen view of an alternative candidate shown to the client"""
    return {
        "id": str(nanny.id),
        "name": nanny.profile.full_name if nanny.profile else "Unknown",
        "rating": nanny.rating,
        "hourly_rate": float(nanny.hourly_rate) if nanny.hourly_rate is not None else None,
        "monthly_rate": float(nanny.monthly_rate) if nanny.monthly_rate is not None else None,
        "experience_level": nanny.experience_level,
    }


class CandidateSelector:
    """Ranks eligible nannies by rating for a booking"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def eligible_nannies(self, exclude_ids: Iterable[uuid.UUID] = ()) -> list[Nanny]:
        query = (
            select(Nanny)
            .where(
                Nanny.approval_status == ApprovalStatus.APPROVED,
                Nanny.is_available.is_(True),
                Nanny.can_receive_bookings.is_(True),
            )
            .order_by(Nanny.rating.desc(), Nanny.id)
        )
        excluded = [i for i in exclude_ids if i is not None]
        if excluded:
            query = query.where(Nanny.id.not_in(excluded))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_candidates(
        self,
        booking: Booking,
        exclude_ids: Iterable[uuid.UUID] = (),
        limit: int | None = None,
    ) -> list[Nanny]:
        """
        Find nannies able to take over a booking, best rated first

        Args:
            booking: Booking whose category, arrangement and skills must be met
            exclude_ids: Nannies never to return (the rejecting nanny, previous payees)
            limit: Maximum candidates, defaults to the configured pool size

        Returns:
            Ordered candidate list, possibly empty
        """
        limit = limit or settings.candidate_pool_limit
        pool = await self.eligible_nannies(exclude_ids)
        candidates = [
            nanny for nanny in pool
            if nanny_supports(
                nanny,
                booking.booking_type.value,
                booking.living_arrangement,
                booking.required_skills,
            )
        ][:limit]

        logger.info(
            f"Found {len(candidates)} candidates for booking {booking.id}",
            extra={"booking_id": str(booking.id), "pool_size": len(pool)},
        )
        return candidates
