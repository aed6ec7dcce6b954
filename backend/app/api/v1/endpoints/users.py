from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from typing import Optional

from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.core.security import verify_password, get_password_hash, password_strength_errors
from app.core.types import is_valid_uuid
from app.models.user import User, UserRole
from app.models.subscription import PlanName
from app.modules.auth.dependencies import get_current_user, clear_auth_cookie
from app.schemas.auth import ChangePasswordRequest, DeleteAccountRequest
from app.schemas.user import ProfileUpdate
from app.services.email_service import email_service, send_in_background
from app.services.user_service import apply_profile_update, delete_account
from app.utils.storage_client import storage_client, validate_upload

router = APIRouter()


@router.get("/me/profile")
async def get_my_profile(current_user: User = Depends(get_current_user)):
    return {"message": "User profile fetched successfully", "user": current_user.to_dict()}


@router.put("/me/profile")
async def update_my_profile(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Partial update; investors may also send preference and profile blocks"""
    changes = apply_profile_update(current_user, data)
    await db.commit()
    logger.info(f"[Auth] Profile updated for {current_user.id}: {sorted(changes)}")
    return {"message": "Profile updated successfully", "user": current_user.to_dict()}


async def _replace_image(user: User, field: str, file: UploadFile) -> dict:
    content = await file.read()
    try:
        validate_upload(file.filename, file.content_type, len(content), kind="image")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    key = f"users/{user.id}/{field}/{file.filename}"
    uploaded = await run_in_threadpool(storage_client.upload_file, content, key, file.content_type)

    previous = getattr(user, field) or {}
    if previous.get("public_id") and previous["public_id"] != uploaded["public_id"]:
        await run_in_threadpool(storage_client.delete_file, previous["public_id"])
    return uploaded


@router.post("/me/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    current_user.avatar_image = await _replace_image(current_user, "avatar_image", file)
    await db.commit()
    return {"message": "Avatar updated successfully", "user": current_user.to_dict()}


@router.post("/me/banner")
async def upload_banner(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    current_user.banner_image = await _replace_image(current_user, "banner_image", file)
    await db.commit()
    return {"message": "Banner updated successfully", "user": current_user.to_dict()}


@router.patch("/me/password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not verify_password(data.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Current password is incorrect")
    if data.new_password != data.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="New password and confirm password do not match"
        )
    if data.new_password == data.current_password:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="New password cannot be same as current password"
        )
    errors = password_strength_errors(data.new_password)
    if errors:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=errors[0])

    current_user.hashed_password = get_password_hash(data.new_password)
    await db.commit()
    logger.log_auth_event(event="change_password", success=True, user_email=current_user.email)
    return {"message": "Password changed successfully"}


@router.delete("/me")
async def delete_me(
    data: DeleteAccountRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not data.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password is required to delete account")
    if not verify_password(data.password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Incorrect password")

    email, name = current_user.email, current_user.full_name
    await delete_account(db, current_user)
    await db.commit()

    clear_auth_cookie(response)
    send_in_background(email_service.send_account_deleted_email(email, name))
    logger.log_auth_event(event="delete_account", success=True, user_email=email)
    return {"message": "User deleted successfully"}


@router.patch("/me/unsubscribe")
async def unsubscribe(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Hide the user's pitches and stop marketing email"""
    current_user.is_unsubscribed = True
    await db.commit()
    return {"message": "Unsubscribed successfully", "is_unsubscribed": True}


@router.patch("/me/resubscribe")
async def resubscribe(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    current_user.is_unsubscribed = False
    await db.commit()
    return {"message": "Resubscribed successfully", "is_unsubscribed": False}


@router.get("/me/context")
async def get_my_context(current_user: User = Depends(get_current_user)):
    return {
        "subscription_plan": current_user.subscription_plan,
        "country": current_user.country_name,
        "region": current_user.city_name,
        "role": current_user.role,
    }


@router.get("/featured-investors")
async def featured_investors(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User)
        .where(
            and_(
                User.role == UserRole.INVESTOR.value,
                User.subscription_plan == PlanName.INVESTOR_ACCESS.value,
                User.is_email_verified == True,  # noqa: E712
                User.is_investor_profile_complete == True,  # noqa: E712
                User.is_unsubscribed != True,  # noqa: E712
            )
        )
        .order_by(User.created_at.desc())
        .limit(3)
    )
    return {"investors": [u.to_dict() for u in result.scalars().all()]}


@router.get("/profile/{user_id}")
async def get_public_profile(user_id: str, db: AsyncSession = Depends(get_db)):
    user: Optional[User] = None
    if is_valid_uuid(user_id):
        user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    profile = user.to_dict()
    profile.pop("email", None)
    return {"user": profile}
