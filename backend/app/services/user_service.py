"""
User Service - profile updates and account removal.
"""

from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import logger
from app.models.favourite import Favourite
from app.models.password_reset import PasswordResetToken
from app.models.pitch import Pitch
from app.models.subscription import PaymentHistory, UserSubscription
from app.models.user import User, UserRole, default_investment_preferences, default_profile_info
from app.schemas.user import ProfileUpdate, InvestmentPreferencesUpdate, ProfileInfoUpdate
from app.services.chat_service import ChatService

BASIC_PROFILE_FIELDS = (
    "full_name", "country_name", "city_name", "phone_number", "mobile_number", "bio", "is_accredited_investor",
)


def merge_section(current: Optional[dict], defaults: dict, update) -> dict:
    """Key-by-key merge; returns a new dict so the JSON column is reassigned"""
    merged = dict(defaults)
    merged.update(current or {})
    if update is not None:
        merged.update(update.model_dump(exclude_unset=True, exclude_none=True))
    return merged


def investor_profile_is_complete(user: User) -> bool:
    info = user.profile_info or {}
    prefs = user.investment_preferences or {}
    return bool(
        info.get("about_me")
        and info.get("areas_of_expertise")
        and info.get("previous_investments") is not None
        and prefs.get("investment_range_min") is not None
        and prefs.get("investment_range_max") is not None
        and prefs.get("max_investments_per_year") is not None
        and prefs.get("interested_industries")
    )


def apply_investor_sections(
    user: User,
    preferences: Optional[InvestmentPreferencesUpdate],
    profile_info: Optional[ProfileInfoUpdate]
) -> None:
    if preferences is not None:
        user.investment_preferences = merge_section(
            user.investment_preferences, default_investment_preferences(), preferences
        )
    if profile_info is not None:
        user.profile_info = merge_section(user.profile_info, default_profile_info(), profile_info)


def apply_profile_update(user: User, data: ProfileUpdate) -> Dict[str, Any]:
    """Apply a partial profile update; returns the basic fields that changed"""
    changes = data.model_dump(include=set(BASIC_PROFILE_FIELDS), exclude_unset=True)
    for key, value in changes.items():
        setattr(user, key, value)

    if user.role == UserRole.INVESTOR.value:
        apply_investor_sections(user, data.investment_preferences, data.profile_info)
        if data.is_investor_profile_complete:
            user.is_investor_profile_complete = investor_profile_is_complete(user)
        elif data.is_investor_profile_complete is False:
            user.is_investor_profile_complete = False
    return changes


async def delete_account(db: AsyncSession, user: User) -> None:
    """Delete the user and every row they own"""
    user_id = user.id
    await ChatService(db).delete_for_user(user_id)

    pitch_ids = [row[0] for row in (await db.execute(select(Pitch.id).where(Pitch.user_id == user_id))).all()]
    if pitch_ids:
        await db.execute(delete(Favourite).where(Favourite.pitch_id.in_(pitch_ids)))
    await db.execute(delete(Favourite).where(Favourite.investor_id == user_id))
    await db.execute(delete(Pitch).where(Pitch.user_id == user_id))
    await db.execute(delete(PaymentHistory).where(PaymentHistory.user_id == user_id))
    await db.execute(delete(UserSubscription).where(UserSubscription.user_id == user_id))
    await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id))
    await db.delete(user)
    await db.flush()
    logger.info(f"[Auth] Deleted account {user_id}")
