"""
Pitch Service
=============
Draft wizard persistence, publishing and public discovery.

A user owns at most one editable draft; every step writer and the auto-save
upsert that draft. Discovery works on the published set in memory because the
filters reach into the JSON sections and must behave the same on PostgreSQL
and SQLite.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, and_, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.models.favourite import Favourite
from app.models.pitch import Pitch, PitchStatus, PITCH_SECTIONS
from app.models.subscription import UserSubscription, PlanName, LIVE_STATUSES
from app.models.user import User, UserRole
from app.modules.auth.access_control import PRIORITY_PLANS
from app.services.subscription_service import is_subscription_live
from app.utils.pagination import paginate_list


STEP_REQUIRED_FIELDS = {
    "company-info": [
        "pitch_title", "website", "country", "phone_number", "industry1",
        "stage", "ideal_investor_role", "raising_amount", "minimum_investment",
    ],
    "pitch-deal": [
        "summary", "business", "market", "progress", "objectives",
        "highlights", "deal_type", "financials", "tags",
    ],
}

STEP_LABELS = {
    "company-info": "Company",
    "pitch-deal": "Pitch deal",
    "team": "Team",
    "media": "Media",
    "documents": "Documents",
}

# Range filter is a no-op at the form defaults
DEFAULT_MIN_INVESTMENT = 1000
DEFAULT_MAX_INVESTMENT = 10_000_000

NEWEST_WINDOW = timedelta(hours=4)


def has_meaningful_content(data: Any) -> bool:
    """True when any leaf holds user input: text, a positive number, a non-empty list"""
    if not isinstance(data, dict):
        return False
    for value in data.values():
        if isinstance(value, bool):
            if value:
                return True
        elif isinstance(value, str):
            if value.strip():
                return True
        elif isinstance(value, (int, float)):
            if value > 0:
                return True
        elif isinstance(value, list):
            if value:
                return True
        elif isinstance(value, dict):
            if has_meaningful_content(value):
                return True
        elif value is not None:
            return True
    return False


def _text(section: Optional[dict], key: str) -> bool:
    value = (section or {}).get(key)
    return isinstance(value, str) and bool(value.strip())


def _has_url(section: Optional[dict], key: str) -> bool:
    value = (section or {}).get(key)
    return isinstance(value, dict) and bool(value.get("url"))


def pitch_has_content(pitch: Pitch) -> bool:
    """Whether a draft holds anything the user typed or uploaded"""
    company = pitch.company_info or {}
    if any(_text(company, k) for k in ("pitch_title", "website", "phone_number")):
        return True

    deal = pitch.pitch_deal or {}
    if any(_text(deal, k) for k in ("summary", "business", "market")):
        return True

    members = (pitch.team or {}).get("members") or []
    if any(
        isinstance(m, dict) and any(_text(m, k) for k in ("name", "role", "bio"))
        for m in members
    ):
        return True

    media = pitch.media or {}
    if (
        _has_url(media, "logo") or _has_url(media, "banner") or _has_url(media, "uploaded_video")
        or _text(media, "youtube_url") or media.get("images")
    ):
        return True

    documents = pitch.documents or {}
    if any(_has_url(documents, k) for k in ("business_plan", "financials", "pitch_deck", "executive_summary")):
        return True
    return bool(documents.get("additional_documents"))


def missing_required_fields(step_name: str, data: Dict[str, Any]) -> List[str]:
    missing = []
    for key in STEP_REQUIRED_FIELDS.get(step_name, []):
        value = data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()) or (isinstance(value, list) and not value):
            missing.append(key)
    return missing


def parse_amount(value: Any, default: int = 0) -> int:
    """Digits of a free-text amount ("$50,000" -> 50000)"""
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^0-9]", "", str(value))
    return int(digits) if digits else default


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ----------------------------------------------------------------------
# Drafts
# ----------------------------------------------------------------------

async def get_user_draft(db: AsyncSession, user_id) -> Optional[Pitch]:
    """The user's draft, newest first if older duplicates exist"""
    result = await db.execute(
        select(Pitch)
        .where(and_(Pitch.user_id == user_id, Pitch.status == PitchStatus.DRAFT.value))
        .order_by(Pitch.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def save_step(db: AsyncSession, user_id, step_name: str, data: Any) -> Pitch:
    """Write one wizard section into the user's draft and mark the step done"""
    section = PITCH_SECTIONS[step_name]
    pitch = await get_user_draft(db, user_id)
    if pitch is None:
        pitch = Pitch(user_id=user_id, status=PitchStatus.DRAFT.value, is_active=True, completed_steps=[])
        db.add(pitch)

    setattr(pitch, section, data)
    pitch.mark_step_completed(step_name)
    pitch.updated_at = datetime.utcnow()
    await db.flush()
    logger.info(f"[Pitch] Saved step {step_name} for draft {pitch.id}")
    return pitch


async def auto_save(db: AsyncSession, user_id, step_name: str, step_data: Any) -> Optional[Pitch]:
    """
    Background save from the wizard. Returns None without writing when the
    payload is empty so abandoned forms never create drafts.
    """
    section = PITCH_SECTIONS.get(step_name)
    if section is None:
        raise ValidationError(f"Unknown step: {step_name}", field="step_name")
    if not has_meaningful_content(step_data):
        return None

    pitch = await get_user_draft(db, user_id)
    if pitch is None:
        pitch = Pitch(user_id=user_id, status=PitchStatus.DRAFT.value, is_active=True, completed_steps=[])
        db.add(pitch)

    setattr(pitch, section, step_data)
    pitch.updated_at = datetime.utcnow()
    await db.flush()
    logger.debug(f"[Pitch] Auto-saved {step_name} for draft {pitch.id}")
    return pitch


async def cleanup_empty_drafts(db: AsyncSession, user_id, keep_id=None) -> int:
    result = await db.execute(
        select(Pitch).where(and_(Pitch.user_id == user_id, Pitch.status == PitchStatus.DRAFT.value))
    )
    removed = 0
    for draft in result.scalars().all():
        if keep_id is not None and str(draft.id) == str(keep_id):
            continue
        if not pitch_has_content(draft):
            await db.delete(draft)
            removed += 1
    if removed:
        await db.flush()
        logger.info(f"[Pitch] Removed {removed} empty drafts for {user_id}")
    return removed


async def check_publishing_rights(db: AsyncSession, user: User) -> Tuple[bool, Optional[str]]:
    """Entrepreneurs need an active or trialing subscription to publish"""
    if user.role != UserRole.ENTREPRENEUR.value:
        return True, None
    result = await db.execute(
        select(UserSubscription.id).where(
            and_(
                UserSubscription.user_id == user.id,
                UserSubscription.active == True,  # noqa: E712
                UserSubscription.status.in_(LIVE_STATUSES),
            )
        ).limit(1)
    )
    if result.scalar_one_or_none() is None:
        return False, "Entrepreneurs need to purchase a subscription plan (Basic or Premium) to publish pitches"
    return True, None


async def publish_draft(db: AsyncSession, user: User, draft: Pitch, package: Dict[str, Any]) -> Pitch:
    """Publish the draft and count it against the user's subscription"""
    now = datetime.utcnow()
    draft.package = package
    draft.status = PitchStatus.PUBLISHED.value
    draft.published_at = now
    draft.updated_at = now
    draft.mark_step_completed("packages")

    result = await db.execute(select(UserSubscription).where(UserSubscription.user_id == user.id))
    subscription = result.scalar_one_or_none()
    if subscription is not None:
        subscription.pitches_used = (subscription.pitches_used or 0) + 1

    await db.flush()
    await cleanup_empty_drafts(db, user.id, keep_id=draft.id)
    logger.info(f"[Pitch] Published {draft.id} for {user.id}")
    return draft


async def delete_pitch(db: AsyncSession, user: User, pitch: Pitch) -> bool:
    """Delete and release the subscription slot if it was published"""
    was_published = pitch.is_published
    if was_published:
        result = await db.execute(select(UserSubscription).where(UserSubscription.user_id == user.id))
        subscription = result.scalar_one_or_none()
        if subscription is not None and (subscription.pitches_used or 0) > 0:
            subscription.pitches_used -= 1
    await db.execute(delete(Favourite).where(Favourite.pitch_id == pitch.id))
    await db.delete(pitch)
    await db.flush()
    return was_published


async def count_live_pitches(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(Pitch.id)).where(
            and_(Pitch.status == PitchStatus.PUBLISHED.value, Pitch.is_active == True)  # noqa: E712
        )
    )
    return result.scalar() or 0


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------

@dataclass
class DiscoveryFilters:
    page: int = 1
    limit: int = 12
    search: Optional[str] = None
    countries: List[str] = field(default_factory=list)
    industries: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    funding_types: List[str] = field(default_factory=list)
    min_investment: Optional[float] = None
    max_investment: Optional[float] = None
    sort_by: str = "newest"
    prioritize_premium: bool = True


async def load_published(db: AsyncSession, since: Optional[datetime] = None) -> List[Tuple[Pitch, User]]:
    """Published, active pitches whose owner has not unsubscribed"""
    query = (
        select(Pitch, User)
        .join(User, User.id == Pitch.user_id)
        .where(
            and_(
                Pitch.status == PitchStatus.PUBLISHED.value,
                Pitch.is_active == True,  # noqa: E712
                User.is_unsubscribed != True,  # noqa: E712
            )
        )
    )
    if since is not None:
        query = query.where(Pitch.published_at >= since)
    result = await db.execute(query)
    return [(row[0], row[1]) for row in result.all()]


async def hidden_owner_ids(db: AsyncSession, owners: List[User], viewer_id: Optional[str] = None) -> set:
    """
    Entrepreneurs whose pitches are hidden: no subscription, an inactive one, or
    a non-live status whose period has ended. The viewer is never hidden from
    themselves.
    """
    entrepreneur_ids = {str(o.id) for o in owners if o.role == UserRole.ENTREPRENEUR.value}
    if not entrepreneur_ids:
        return set()

    result = await db.execute(select(UserSubscription).where(UserSubscription.user_id.in_(entrepreneur_ids)))
    subscriptions = {str(s.user_id): s for s in result.scalars().all()}

    now = datetime.utcnow()
    hidden = {owner_id for owner_id in entrepreneur_ids if not is_subscription_live(subscriptions.get(owner_id), now)}

    if viewer_id:
        hidden.discard(str(viewer_id))
    return hidden


def _matches_search(pitch: Pitch, term: str) -> bool:
    term = term.lower()
    haystack = [
        pitch.title,
        pitch.industry,
        (pitch.pitch_deal or {}).get("summary") or "",
        pitch.country,
    ]
    return any(term in str(value).lower() for value in haystack)


def _matches_filters(pitch: Pitch, filters: DiscoveryFilters) -> bool:
    company = pitch.company_info or {}
    if filters.search and not _matches_search(pitch, filters.search):
        return False
    if filters.countries and company.get("country") not in filters.countries:
        return False
    if filters.industries and company.get("industry1") not in filters.industries:
        return False
    if filters.stages and company.get("stage") not in filters.stages:
        return False
    if filters.funding_types and (pitch.pitch_deal or {}).get("deal_type") not in filters.funding_types:
        return False

    if filters.min_investment is not None or filters.max_investment is not None:
        min_amount = int(filters.min_investment or 0)
        max_amount = int(filters.max_investment) if filters.max_investment is not None else None
        if min_amount > DEFAULT_MIN_INVESTMENT or (max_amount is not None and max_amount < DEFAULT_MAX_INVESTMENT):
            if parse_amount(company.get("minimum_investment"), 0) < min_amount:
                return False
            if max_amount is not None and parse_amount(company.get("raising_amount"), 999_999_999) > max_amount:
                return False
    return True


def apply_viewer_rules(rows: List[Tuple[Pitch, User]], viewer: Optional[User]) -> List[Tuple[Pitch, User]]:
    """Investors without the Investor Access Plan only see their own country"""
    if viewer is None or viewer.role != UserRole.INVESTOR.value:
        return rows
    if viewer.subscription_plan == PlanName.INVESTOR_ACCESS.value:
        return rows
    return [(p, o) for p, o in rows if p.country == viewer.country_name]


def _sort_key_time(pitch: Pitch) -> float:
    moment = pitch.published_at or pitch.created_at or datetime.min
    return moment.timestamp() if moment != datetime.min else 0.0


def sort_rows(rows: List[Tuple[Pitch, User]], sort_by: str = "newest", prioritize_premium: bool = True):
    newest_first = sort_by != "oldest"
    rows = sorted(rows, key=lambda r: _sort_key_time(r[0]), reverse=newest_first)
    if prioritize_premium:
        # stable sort keeps the time order inside each group
        rows = sorted(rows, key=lambda r: 0 if r[1].subscription_plan in PRIORITY_PLANS else 1)
    return rows


def discovery_item(pitch: Pitch, owner: User) -> Dict[str, Any]:
    return {
        "id": str(pitch.id),
        "company_info": pitch.company_info or {},
        "pitch_deal": pitch.pitch_deal or {},
        "media": pitch.media or {},
        "status": pitch.status,
        "published_at": pitch.published_at.isoformat() if pitch.published_at else None,
        "created_at": pitch.created_at.isoformat() if pitch.created_at else None,
        "user": {
            "id": str(owner.id),
            "full_name": owner.full_name,
            "role": owner.role,
            "subscription_plan": owner.subscription_plan,
            "avatar_image": owner.avatar_image,
        },
    }


async def discover_published(db: AsyncSession, viewer: Optional[User], filters: DiscoveryFilters) -> Dict[str, Any]:
    rows = await load_published(db)
    hidden = await hidden_owner_ids(db, [o for _, o in rows], str(viewer.id) if viewer else None)
    rows = [(p, o) for p, o in rows if str(o.id) not in hidden]
    rows = [(p, o) for p, o in rows if _matches_filters(p, filters)]
    rows = apply_viewer_rules(rows, viewer)
    rows = sort_rows(rows, filters.sort_by, filters.prioritize_premium)

    page = paginate_list(rows, filters.page, filters.limit)
    premium_count = sum(1 for _, o in rows if o.subscription_plan in PRIORITY_PLANS)
    basic_count = sum(1 for _, o in rows if o.subscription_plan == PlanName.BASIC.value)

    return {
        "pitches": [discovery_item(p, o) for p, o in page["items"]],
        "pagination": {
            "current_page": page["page"],
            "total_pages": page["total_pages"],
            "total_items": page["total"],
            "has_next": page["page"] < page["total_pages"],
            "has_prev": page["page"] > 1,
        },
        "meta": {
            "premium_count": premium_count,
            "basic_count": basic_count,
            "filtered_count": page["total"],
            "viewer_role": viewer.role if viewer else "unknown",
        },
    }


async def featured_pitches(db: AsyncSession, viewer: Optional[User], category: str = "trending", limit: int = 3):
    since = datetime.utcnow() - NEWEST_WINDOW if category == "newest" else None
    rows = await load_published(db, since=since)
    rows = apply_viewer_rules(rows, viewer)
    rows = sort_rows(rows, "newest", prioritize_premium=True)
    return [discovery_item(p, o) for p, o in rows[:limit]]


def public_card(pitch: Pitch, owner: Optional[User]) -> Dict[str, Any]:
    company = pitch.company_info or {}
    media = pitch.media or {}
    return {
        "id": str(pitch.id),
        "company_info": {
            "pitch_title": company.get("pitch_title") or "Untitled Pitch",
            "industry1": company.get("industry1") or "General",
            "raising_amount": company.get("raising_amount") or "0",
            "raised_so_far": company.get("raised_so_far") or "0",
        },
        "pitch_deal": {"summary": (pitch.pitch_deal or {}).get("summary") or "No description available"},
        "media": {"banner": media.get("banner"), "logo": media.get("logo")},
        "package": {"selected_package": (pitch.package or {}).get("selected_package") or "Basic"},
        "user": {
            "full_name": owner.full_name if owner else "",
            "avatar_image": owner.avatar_image if owner else None,
        },
        "created_at": pitch.created_at.isoformat() if pitch.created_at else None,
        "updated_at": pitch.updated_at.isoformat() if pitch.updated_at else None,
    }


async def public_featured(db: AsyncSession, kind: str = "trending", limit: int = 6) -> List[Dict[str, Any]]:
    """Homepage cards: premium packages first, then by creation time"""
    rows = await load_published(db)
    newest_first = kind == "newest"
    rows = sorted(rows, key=lambda r: (r[0].created_at or datetime.min), reverse=newest_first)
    rows = sorted(rows, key=lambda r: (r[0].package or {}).get("selected_package") or "", reverse=True)
    return [public_card(p, o) for p, o in rows[:limit]]


def restricted_preview(pitch: Pitch) -> Dict[str, Any]:
    """What an entrepreneur sees of a competitor's pitch"""
    company = pitch.company_info or {}
    return {
        "id": str(pitch.id),
        "company_info": {
            "pitch_title": company.get("pitch_title"),
            "industry1": company.get("industry1"),
            "country": company.get("country"),
        },
        "media": {"logo": (pitch.media or {}).get("logo")},
        "pitch_deal": {"deal_type": (pitch.pitch_deal or {}).get("deal_type")},
        "restricted": True,
    }
