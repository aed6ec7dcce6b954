from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from typing import Optional

from app.core.database import get_db
from app.core.types import is_valid_uuid
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_optional_current_user, get_current_investor
from app.schemas.user import InvestorProfileUpdate
from app.services.investor_service import InvestorSearch, search_investors, investor_card, preferred_pitches
from app.services.pitch_service import split_csv
from app.services.user_service import apply_investor_sections

router = APIRouter()


@router.get("/search")
async def search(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    query: Optional[str] = None,
    industries: Optional[str] = None,
    countries: Optional[str] = None,
    stages: Optional[str] = None,
    investment_range_min: Optional[float] = None,
    investment_range_max: Optional[float] = None,
    sort_by: str = "newest",
    viewer: Optional[User] = Depends(get_optional_current_user),
    db: AsyncSession = Depends(get_db)
):
    criteria = InvestorSearch(
        page=page,
        limit=limit,
        query=query.strip() if query and query.strip() else None,
        industries=split_csv(industries),
        countries=split_csv(countries),
        stages=split_csv(stages),
        range_min=investment_range_min,
        range_max=investment_range_max,
        sort_by=sort_by,
    )
    data = await search_investors(db, viewer, criteria)
    return {"message": "Investors retrieved successfully", "data": data}


@router.get("/preferred-pitches")
async def get_preferred_pitches(
    current_user: User = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db)
):
    pitches = await preferred_pitches(db, current_user)
    if pitches is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Investor preferences not found. Please set your preferences in the account settings."
        )
    return {"message": "Preferred pitches retrieved successfully", "data": pitches}


@router.put("/profile")
async def update_investor_profile(
    data: InvestorProfileUpdate,
    current_user: User = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db)
):
    apply_investor_sections(current_user, data.investment_preferences, data.profile_info)
    if (current_user.profile_info or {}).get("about_me"):
        current_user.is_investor_profile_complete = True
    await db.commit()
    return {"message": "Investor profile updated successfully", "user": current_user.to_dict()}


@router.get("/{investor_id}")
async def get_investor(investor_id: str, db: AsyncSession = Depends(get_db)):
    investor = None
    if is_valid_uuid(investor_id):
        result = await db.execute(
            select(User).where(and_(User.id == investor_id, User.role == UserRole.INVESTOR.value))
        )
        investor = result.scalar_one_or_none()
    if investor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Investor not found")

    card = investor_card(investor)
    card["investment_preferences"] = investor.investment_preferences or {}
    card["profile_info"] = investor.profile_info or {}
    return {"message": "Investor retrieved successfully", "data": card}
