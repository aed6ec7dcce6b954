from fastapi import APIRouter, Depends, HTTPException, status, Query, Body, UploadFile, File
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from datetime import datetime
from typing import Optional, Dict, Any

from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.core.types import is_valid_uuid
from app.models.pitch import Pitch, PitchStatus
from app.models.user import User, UserRole
from app.modules.auth.dependencies import get_current_user, get_optional_current_user
from app.modules.auth.access_control import require_pitch_slot, require_document_access, PitchLimitCheck
from app.schemas.pitch import PackageSelection, AutoSaveRequest, DeleteFileRequest, DeleteMediaFileRequest
from app.services import pitch_service
from app.services.pitch_service import DiscoveryFilters, split_csv
from app.utils.storage_client import storage_client, validate_upload, build_object_key

router = APIRouter()

MEDIA_FILE_TYPES = ("logo", "banner", "uploaded_video")
UPLOAD_KINDS = ("image", "video", "document")


async def _get_pitch(db: AsyncSession, pitch_id: str) -> Optional[Pitch]:
    if not is_valid_uuid(pitch_id):
        return None
    result = await db.execute(select(Pitch).where(Pitch.id == pitch_id))
    return result.scalar_one_or_none()


async def _save_step(db: AsyncSession, user: User, step_name: str, data: Dict[str, Any]) -> dict:
    pitch = await pitch_service.save_step(db, user.id, step_name, data)
    await db.commit()
    section = pitch_service.PITCH_SECTIONS[step_name]
    return {
        "message": f"{pitch_service.STEP_LABELS[step_name]} information saved successfully",
        "data": {section: getattr(pitch, section), "completed_steps": pitch.completed_steps},
    }


def _require_fields(step_name: str, data: Dict[str, Any]) -> None:
    missing = pitch_service.missing_required_fields(step_name, data)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}"
        )


# ==================== Draft wizard ====================

@router.get("/draft")
async def get_draft(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    draft = await pitch_service.get_user_draft(db, current_user.id)
    if draft is None:
        return {"message": "No draft found", "data": None}
    return {"message": "Pitch draft retrieved successfully", "data": draft.to_dict()}


@router.put("/company-info")
async def save_company_info(
    data: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    _require_fields("company-info", data)
    return await _save_step(db, current_user, "company-info", data)


@router.put("/pitch-deal")
async def save_pitch_deal(
    data: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    _require_fields("pitch-deal", data)
    return await _save_step(db, current_user, "pitch-deal", data)


@router.put("/team")
async def save_team(
    data: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not isinstance(data.get("members"), list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Members data is required")
    return await _save_step(db, current_user, "team", data)


@router.put("/media")
async def save_media(
    data: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await _save_step(db, current_user, "media", data)


@router.put("/documents")
async def save_documents(
    data: Dict[str, Any] = Body(...),
    _restrictions=Depends(require_document_access),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await _save_step(db, current_user, "documents", data)


@router.put("/package")
async def publish_pitch(
    data: PackageSelection,
    slot: PitchLimitCheck = Depends(require_pitch_slot),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Select a package and publish the draft"""
    can_publish, reason = await pitch_service.check_publishing_rights(db, current_user)
    if not can_publish:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=reason)

    if not data.selected_package or not data.agree_to_terms:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Package selection and terms agreement are required"
        )

    draft = await pitch_service.get_user_draft(db, current_user.id)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No draft pitch found to publish")

    if not pitch_service.pitch_has_content(draft):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot publish an empty pitch. Please add content first."
        )

    pitch = await pitch_service.publish_draft(
        db,
        current_user,
        draft,
        {"selected_package": data.selected_package, "agree_to_terms": True},
    )
    await db.commit()
    return {
        "message": "Pitch published successfully",
        "data": {
            "package": pitch.package,
            "completed_steps": pitch.completed_steps,
            "status": pitch.status,
            "published_count": slot.published_count + 1,
            "limit": slot.limit,
        },
    }


@router.post("/auto-save")
async def auto_save(
    data: AutoSaveRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        pitch = await pitch_service.auto_save(db, current_user.id, data.step_name, data.step_data)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    if pitch is None:
        return {"message": "No content to save", "data": None}

    await db.commit()
    return {
        "message": "Pitch auto-saved successfully",
        "data": {
            "last_saved": datetime.utcnow().isoformat(),
            "step_name": data.step_name,
            "draft_id": str(pitch.id),
        },
    }


# ==================== Files ====================

@router.post("/upload/{file_type}")
async def upload_pitch_file(
    file_type: str,
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user)
):
    if file_type not in UPLOAD_KINDS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    content = await file.read()
    try:
        validate_upload(file.filename, file.content_type, len(content), kind=file_type)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    key = build_object_key(str(current_user.id), file_type, file.filename)
    uploaded = await run_in_threadpool(storage_client.upload_file, content, key, file.content_type)
    return {
        "message": "File uploaded successfully",
        "data": {**uploaded, "original_name": file.filename},
    }


@router.delete("/file")
async def delete_pitch_file(data: DeleteFileRequest, current_user: User = Depends(get_current_user)):
    if not data.public_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Public ID is required")
    deleted = await run_in_threadpool(storage_client.delete_file, data.public_id)
    return {"message": "File deleted successfully", "data": {"deleted": deleted}}


@router.delete("/media-file")
async def delete_media_file(
    data: DeleteMediaFileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not data.file_type or not data.public_id or data.file_type not in MEDIA_FILE_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File type and public ID are required")

    draft = await pitch_service.get_user_draft(db, current_user.id)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No draft pitch found")

    media = dict(draft.media or {})
    media[data.file_type] = None
    draft.media = media
    await db.commit()

    await run_in_threadpool(storage_client.delete_file, data.public_id)
    return {"message": "Media file deleted successfully", "data": {"media": draft.media}}


# ==================== Owner views ====================

@router.get("/my-pitches")
async def my_pitches(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Pitch).where(Pitch.user_id == current_user.id).order_by(Pitch.updated_at.desc())
    )
    return {"message": "Pitches retrieved successfully", "data": [p.to_dict() for p in result.scalars().all()]}


@router.get("/my-pitch/{pitch_id}")
async def my_pitch(pitch_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    pitch = await _get_pitch(db, pitch_id)
    if pitch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")
    if str(pitch.user_id) != str(current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You don't have permission to view this pitch")
    return {"message": "Pitch retrieved successfully", "data": pitch.to_dict()}


@router.delete("/cleanup-drafts")
async def cleanup_drafts(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    removed = await pitch_service.cleanup_empty_drafts(db, current_user.id)
    await db.commit()
    return {"message": f"Cleaned up {removed} empty drafts", "data": {"deleted_count": removed}}


@router.get("/publishing-rights")
async def publishing_rights(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    can_publish, reason = await pitch_service.check_publishing_rights(db, current_user)
    return {
        "can_publish": can_publish,
        "reason": reason,
        "message": "You can publish pitches" if can_publish else reason,
    }


@router.get("/count")
async def pitch_count(db: AsyncSession = Depends(get_db)):
    return {"count": await pitch_service.count_live_pitches(db)}


# ==================== Discovery ====================

@router.get("/published")
async def published_pitches(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: Optional[str] = None,
    countries: Optional[str] = None,
    industries: Optional[str] = None,
    stages: Optional[str] = None,
    funding_types: Optional[str] = None,
    min_investment: Optional[float] = None,
    max_investment: Optional[float] = None,
    sort_by: str = "newest",
    prioritize_premium: bool = True,
    viewer: Optional[User] = Depends(get_optional_current_user),
    db: AsyncSession = Depends(get_db)
):
    filters = DiscoveryFilters(
        page=page,
        limit=limit,
        search=search.strip() if search and search.strip() else None,
        countries=split_csv(countries),
        industries=split_csv(industries),
        stages=split_csv(stages),
        funding_types=split_csv(funding_types),
        min_investment=min_investment,
        max_investment=max_investment,
        sort_by=sort_by,
        prioritize_premium=prioritize_premium,
    )
    data = await pitch_service.discover_published(db, viewer, filters)
    return {"message": "Published pitches retrieved successfully", "data": data}


@router.get("/featured")
async def featured(
    category: str = Query("trending", pattern="^(trending|newest|closing)$"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    pitches = await pitch_service.featured_pitches(db, current_user, category)
    return {"message": "Featured pitches retrieved successfully", "data": pitches}


@router.get("/public/featured")
async def public_featured(
    type: str = Query("trending", pattern="^(trending|newest)$"),
    db: AsyncSession = Depends(get_db)
):
    return {"message": "Featured pitches retrieved successfully", "data": await pitch_service.public_featured(db, type)}


@router.get("/public/{pitch_id}")
async def public_pitch(
    pitch_id: str,
    viewer: Optional[User] = Depends(get_optional_current_user),
    db: AsyncSession = Depends(get_db)
):
    pitch = await _get_pitch(db, pitch_id)
    if pitch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pitch not found")
    if not pitch.is_published:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Pitch is not publicly available")

    is_owner = viewer is not None and str(viewer.id) == str(pitch.user_id)
    if viewer is not None and viewer.role == UserRole.ENTREPRENEUR.value and not is_owner:
        return {"message": "Pitch preview retrieved successfully", "data": pitch_service.restricted_preview(pitch)}

    owner = (await db.execute(select(User).where(User.id == pitch.user_id))).scalar_one_or_none()
    data = pitch.to_dict()
    data["user"] = {
        "id": str(owner.id),
        "full_name": owner.full_name,
        "avatar_image": owner.avatar_image,
        "country_name": owner.country_name,
        "subscription_plan": owner.subscription_plan,
    } if owner else None
    return {"message": "Pitch retrieved successfully", "data": data}


@router.delete("/{pitch_id}")
async def delete_pitch(pitch_id: str, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    pitch = await _get_pitch(db, pitch_id)
    if pitch is None or str(pitch.user_id) != str(current_user.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pitch not found or you don't have permission to delete it"
        )

    was_published = await pitch_service.delete_pitch(db, current_user, pitch)
    await db.commit()
    logger.info(f"[Pitch] Deleted {pitch_id} (published={was_published})")
    return {"message": "Pitch deleted successfully", "data": {"pitch_id": pitch_id, "was_published": was_published}}
