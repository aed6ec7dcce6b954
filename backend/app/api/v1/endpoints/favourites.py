from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func

from app.core.database import get_db
from app.core.logging_config import logger
from app.core.types import is_valid_uuid
from app.models.favourite import Favourite
from app.models.pitch import Pitch
from app.models.user import User
from app.modules.auth.dependencies import get_current_investor
from app.schemas.pitch import FavouriteCreate
from app.utils.pagination import paginate

router = APIRouter()


async def _find(db: AsyncSession, investor_id, pitch_id: str):
    if not is_valid_uuid(pitch_id):
        return None
    result = await db.execute(
        select(Favourite).where(and_(Favourite.investor_id == investor_id, Favourite.pitch_id == pitch_id))
    )
    return result.scalar_one_or_none()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def add_favourite(
    data: FavouriteCreate,
    current_user: User = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db)
):
    pitch = None
    if is_valid_uuid(data.pitch_id):
        pitch = (await db.execute(select(Pitch).where(Pitch.id == data.pitch_id))).scalar_one_or_none()
    if pitch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")

    if await _find(db, current_user.id, data.pitch_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pitch already in favourites")

    favourite = Favourite(investor_id=current_user.id, pitch_id=pitch.id)
    db.add(favourite)
    await db.commit()
    logger.info(f"[Favourites] {current_user.id} saved pitch {pitch.id}")
    return {
        "message": "Pitch added to favourites successfully",
        "data": {
            "id": str(favourite.id),
            "pitch_id": str(pitch.id),
            "added_at": favourite.added_at.isoformat() if favourite.added_at else None,
        },
    }


@router.delete("/{pitch_id}")
async def remove_favourite(
    pitch_id: str,
    current_user: User = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db)
):
    favourite = await _find(db, current_user.id, pitch_id)
    if favourite is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Favourite not found")
    await db.delete(favourite)
    await db.commit()
    return {"message": "Pitch removed from favourites successfully"}


@router.get("/")
async def list_favourites(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    current_user: User = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db)
):
    query = (
        select(Favourite)
        .where(Favourite.investor_id == current_user.id)
        .order_by(Favourite.added_at.desc())
    )
    result = await paginate(db, query, page, limit)

    pitch_ids = [f.pitch_id for f in result["items"]]
    pitches = {}
    if pitch_ids:
        rows = await db.execute(select(Pitch).where(Pitch.id.in_(pitch_ids)))
        pitches = {str(p.id): p for p in rows.scalars().all()}

    favourites = []
    for favourite in result["items"]:
        pitch = pitches.get(str(favourite.pitch_id))
        if pitch is None:
            continue
        favourites.append({
            "id": str(favourite.id),
            "added_at": favourite.added_at.isoformat() if favourite.added_at else None,
            "pitch": pitch.to_card(),
        })

    return {
        "message": "Favourites retrieved successfully",
        "data": {
            "favourites": favourites,
            "pagination": {
                "page": result["page"],
                "limit": result["limit"],
                "total": result["total"],
                "total_pages": result["total_pages"],
            },
        },
    }


@router.get("/check/{pitch_id}")
async def check_favourite(
    pitch_id: str,
    current_user: User = Depends(get_current_investor),
    db: AsyncSession = Depends(get_db)
):
    return {"is_favourite": await _find(db, current_user.id, pitch_id) is not None}


@router.get("/count")
async def favourites_count(current_user: User = Depends(get_current_investor), db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(func.count(Favourite.id)).where(Favourite.investor_id == current_user.id))
    return {"count": result.scalar() or 0}
