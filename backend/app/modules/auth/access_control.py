"""
Plan Entitlements
=================
What each subscription plan allows (pitch slots, visibility, documents) and
the FastAPI dependencies that enforce it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Tuple, Dict
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func

from app.core.database import get_db
from app.core.logging_config import logger
from app.models.user import User, UserRole
from app.models.pitch import Pitch, PitchStatus
from app.models.subscription import UserSubscription, PlanName, LIVE_STATUSES
from app.modules.auth.dependencies import get_current_user


@dataclass(frozen=True)
class PlanRestrictions:
    """Entitlements granted by a plan"""
    pitch_limit: int
    global_visibility: bool
    documents_allowed: bool
    investor_access_global: bool
    featured_in_search: bool

    def to_dict(self) -> dict:
        return {
            "pitch_limit": self.pitch_limit,
            "global_visibility": self.global_visibility,
            "documents_allowed": self.documents_allowed,
            "investor_access_global": self.investor_access_global,
            "featured_in_search": self.featured_in_search,
        }


_NO_ACCESS = PlanRestrictions(0, False, False, False, False)
_GLOBAL_ACCESS = PlanRestrictions(5, True, True, True, True)

PLAN_RESTRICTIONS: Dict[str, PlanRestrictions] = {
    PlanName.FREE.value: _NO_ACCESS,
    PlanName.BASIC.value: PlanRestrictions(1, False, True, False, False),
    PlanName.PREMIUM.value: _GLOBAL_ACCESS,
    PlanName.INVESTOR_ACCESS.value: _GLOBAL_ACCESS,
    "default": _NO_ACCESS,
}

# Owners on these plans are visible everywhere and ranked first
PRIORITY_PLANS = (PlanName.PREMIUM.value, PlanName.INVESTOR_ACCESS.value)


@dataclass
class PitchLimitCheck:
    """Result of a pitch slot check"""
    allowed: bool
    reason: Optional[str] = None
    published_count: int = 0
    limit: int = 0
    restrictions: Optional[PlanRestrictions] = None


def get_restrictions_for_plan(plan_name: Optional[str]) -> PlanRestrictions:
    # Users created before plans existed carry no plan name; treat them as Basic
    name = plan_name or PlanName.BASIC.value
    return PLAN_RESTRICTIONS.get(name, PLAN_RESTRICTIONS["default"])


async def count_published_pitches(db: AsyncSession, user_id) -> int:
    result = await db.execute(
        select(func.count(Pitch.id)).where(
            and_(
                Pitch.user_id == user_id,
                Pitch.status == PitchStatus.PUBLISHED.value,
                Pitch.is_active == True,  # noqa: E712
            )
        )
    )
    return result.scalar() or 0


async def check_pitch_limit(db: AsyncSession, user: User) -> PitchLimitCheck:
    """Can this user publish one more pitch?"""
    if user.role != UserRole.ENTREPRENEUR.value:
        return PitchLimitCheck(allowed=False, reason="Only entrepreneurs can publish pitches")

    restrictions = get_restrictions_for_plan(user.subscription_plan)
    published = await count_published_pitches(db, user.id)

    if published >= restrictions.pitch_limit:
        return PitchLimitCheck(
            allowed=False,
            reason=(
                f"You have reached your pitch limit of {restrictions.pitch_limit} for your "
                f"{user.subscription_plan} plan. Please upgrade to publish more pitches."
            ),
            published_count=published,
            limit=restrictions.pitch_limit,
            restrictions=restrictions,
        )

    return PitchLimitCheck(
        allowed=True,
        published_count=published,
        limit=restrictions.pitch_limit,
        restrictions=restrictions,
    )


async def get_user_subscription(db: AsyncSession, user_id) -> Optional[UserSubscription]:
    result = await db.execute(select(UserSubscription).where(UserSubscription.user_id == user_id))
    return result.scalar_one_or_none()


async def has_active_subscription(db: AsyncSession, user_id) -> bool:
    """Active flag, live status and a period end still in the future"""
    result = await db.execute(
        select(UserSubscription.id).where(
            and_(
                UserSubscription.user_id == user_id,
                UserSubscription.active == True,  # noqa: E712
                UserSubscription.status.in_(LIVE_STATUSES),
                UserSubscription.current_period_end > datetime.utcnow(),
            )
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def require_pitch_slot(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> PitchLimitCheck:
    """Dependency - 403 when the user has no free pitch slot"""
    check = await check_pitch_limit(db, current_user)
    if not check.allowed:
        logger.info(f"[Pitch] Publish blocked for {current_user.id}: {check.reason}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=check.reason)
    return check


async def require_document_access(
    current_user: User = Depends(get_current_user)
) -> PlanRestrictions:
    """Dependency - document uploads are open to entrepreneurs on every plan"""
    if current_user.role != UserRole.ENTREPRENEUR.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only entrepreneurs can upload documents"
        )
    return get_restrictions_for_plan(current_user.subscription_plan)


PitchWithOwner = Tuple[Pitch, User]


def filter_pitches_by_subscription(
    pitches: List[PitchWithOwner],
    viewer: Optional[User],
    viewer_country: Optional[str],
    has_active: bool = False
) -> List[PitchWithOwner]:
    """
    Visibility of published pitches for a viewer.

    - Anonymous: only pitches whose owner is on a priority plan
    - Investor: everything with a live Investor Access Plan, otherwise same-country
    - Others: everything with global investor access, otherwise Premium
      pitches plus same-country pitches
    """
    if viewer is None:
        return [(p, o) for p, o in pitches if o.subscription_plan in PRIORITY_PLANS]

    if viewer.role == UserRole.INVESTOR.value:
        if has_active and viewer.subscription_plan == PlanName.INVESTOR_ACCESS.value:
            return list(pitches)
        return [(p, o) for p, o in pitches if p.country == viewer_country]

    if get_restrictions_for_plan(viewer.subscription_plan).investor_access_global:
        return list(pitches)

    return [
        (p, o) for p, o in pitches
        if o.subscription_plan == PlanName.PREMIUM.value or p.country == viewer_country
    ]


def filter_investors_by_subscription(
    investors: List[User],
    restrictions: PlanRestrictions,
    country: Optional[str]
) -> List[User]:
    """Entrepreneurs without global investor access only see investors in their country"""
    if restrictions.investor_access_global:
        return list(investors)
    return [inv for inv in investors if inv.country_name == country]
