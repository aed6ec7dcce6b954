"""
Investor Service - investor search cards and pitch recommendations.

Filtering runs over the loaded investor rows because the criteria live in
JSON preference blocks.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pitch import Pitch, PitchStatus
from app.models.user import User, UserRole
from app.modules.auth.access_control import get_restrictions_for_plan, filter_investors_by_subscription
from app.services.pitch_service import parse_amount, public_card


@dataclass
class InvestorSearch:
    page: int = 1
    limit: int = 10
    query: Optional[str] = None
    industries: List[str] = field(default_factory=list)
    countries: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    sort_by: str = "newest"


def _prefs(user: User) -> Dict[str, Any]:
    return user.investment_preferences or {}


def _info(user: User) -> Dict[str, Any]:
    return user.profile_info or {}


def _contains(values, term: str) -> bool:
    if isinstance(values, str):
        return term in values.lower()
    return any(term in str(v).lower() for v in (values or []))


def matches_query(user: User, term: str) -> bool:
    term = term.lower()
    prefs, info = _prefs(user), _info(user)
    return (
        _contains(user.full_name, term)
        or _contains(user.bio or "", term)
        or _contains(info.get("about_me") or "", term)
        or _contains(prefs.get("interested_industries"), term)
        or _contains(info.get("areas_of_expertise"), term)
        or _contains(prefs.get("languages"), term)
        or _contains(user.country_name or "", term)
        or _contains(prefs.get("investment_stages"), term)
    )


def range_overlaps(user: User, search_min: Optional[float], search_max: Optional[float]) -> bool:
    """Investor range and searched range share at least one value"""
    prefs = _prefs(user)
    inv_min, inv_max = prefs.get("investment_range_min"), prefs.get("investment_range_max")
    if inv_min is None and inv_max is None:
        return False
    low = search_min or 0
    high = search_max if search_max is not None else float("inf")
    inv_min = inv_min if inv_min is not None else 0
    inv_max = inv_max if inv_max is not None else float("inf")
    return inv_min <= high and inv_max >= low


def matches_search(user: User, search: InvestorSearch) -> bool:
    prefs = _prefs(user)
    if search.query and not matches_query(user, search.query):
        return False
    if search.industries:
        interested = [str(i).lower() for i in prefs.get("interested_industries") or []]
        if not any(wanted.lower() in item for wanted in search.industries for item in interested):
            return False
    if search.countries and user.country_name not in search.countries:
        return False
    if search.stages and not set(search.stages) & set(prefs.get("investment_stages") or []):
        return False
    if (search.range_min or search.range_max) and not range_overlaps(user, search.range_min, search.range_max):
        return False
    return True


def _number(value) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)


def investor_card(user: User) -> Dict[str, Any]:
    prefs, info = _prefs(user), _info(user)
    location = ", ".join(part for part in (user.city_name, user.country_name) if part)
    range_min, range_max = prefs.get("investment_range_min"), prefs.get("investment_range_max")
    if range_min and range_max:
        investment_range = f"${_number(range_min / 1000)}K - ${_number(range_max / 1000000)}M"
    else:
        investment_range = "Range not specified"

    return {
        "id": str(user.id),
        "name": user.full_name,
        "title": "Investor",
        "company": info.get("personal_website") or "Independent Investor",
        "avatar": (user.avatar_image or {}).get("url") or "",
        "location": location or "Location not specified",
        "bio": info.get("about_me") or user.bio or "",
        "interests": [
            {"id": f"expertise-{i}", "name": area}
            for i, area in enumerate(info.get("areas_of_expertise") or [])
        ],
        "investment_range": investment_range,
        "past_investments": info.get("previous_investments") or 0,
        "average_investment": range_min or 0,
        "verified": True,
    }


async def search_investors(db: AsyncSession, viewer: Optional[User], search: InvestorSearch) -> Dict[str, Any]:
    result = await db.execute(
        select(User).where(
            and_(User.role == UserRole.INVESTOR.value, User.is_email_verified == True)  # noqa: E712
        )
    )
    investors = [u for u in result.scalars().all() if matches_search(u, search)]

    if search.sort_by == "investments":
        investors.sort(key=lambda u: _info(u).get("previous_investments") or 0, reverse=True)
    else:
        investors.sort(key=lambda u: u.created_at.timestamp() if u.created_at else 0, reverse=True)

    if viewer is not None and viewer.role == UserRole.ENTREPRENEUR.value:
        restrictions = get_restrictions_for_plan(viewer.subscription_plan)
        investors = filter_investors_by_subscription(investors, restrictions, viewer.country_name)

    page, limit = max(1, search.page), max(1, min(100, search.limit))
    total = len(investors)
    return {
        "investors": [investor_card(u) for u in investors[(page - 1) * limit: page * limit]],
        "pagination": {
            "current": page,
            "total": (total + limit - 1) // limit,
            "total_items": total,
        },
    }


def pitch_in_investor_range(pitch: Pitch, investor_max: Optional[float]) -> bool:
    if not investor_max:
        return True
    minimum = parse_amount((pitch.company_info or {}).get("minimum_investment"), 0)
    return minimum == 0 or 1 <= minimum <= investor_max


async def preferred_pitches(db: AsyncSession, investor: User) -> Optional[List[Dict[str, Any]]]:
    """
    Published pitches matching the investor's countries, industries and range.

    Returns None when the investor has no preferences stored.
    """
    prefs = investor.investment_preferences
    if not prefs:
        return None

    countries = prefs.get("pitch_countries") or []
    industries = prefs.get("interested_industries") or []
    result = await db.execute(
        select(Pitch, User)
        .join(User, User.id == Pitch.user_id)
        .where(and_(Pitch.status == PitchStatus.PUBLISHED.value, Pitch.is_active == True))  # noqa: E712
    )

    matches = []
    for pitch, owner in result.all():
        company = pitch.company_info or {}
        if countries and company.get("country") not in countries:
            continue
        if industries and company.get("industry1") not in industries and company.get("industry2") not in industries:
            continue
        if not pitch_in_investor_range(pitch, prefs.get("investment_range_max")):
            continue
        matches.append((pitch, owner))

    matches.sort(key=lambda r: r[0].created_at.timestamp() if r[0].created_at else 0, reverse=True)
    matches.sort(key=lambda r: (r[0].package or {}).get("selected_package") or "", reverse=True)
    return [public_card(p, o) for p, o in matches]
