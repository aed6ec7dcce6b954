from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from datetime import datetime, timedelta

from app.core.database import get_db
from app.core.config import settings
from app.core.security import (
    verify_password,
    get_password_hash,
    password_strength_errors,
    create_token_pair,
    decode_token,
    generate_otp,
    otp_expiry,
    generate_reset_token,
    hash_token,
)
from app.core.logging_config import logger, set_user_id
from app.core.types import is_valid_uuid
from app.models.user import User, UserRole
from app.models.password_reset import PasswordResetToken
from app.models.subscription import PlanName
from app.schemas.auth import (
    UserRegister,
    VerifyEmail,
    ResendVerification,
    UserLogin,
    RefreshTokenRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
)
from app.modules.auth.dependencies import get_current_user, set_auth_cookie, clear_auth_cookie
from app.services.email_service import email_service, send_in_background
from app.core.rate_limiter import limiter, LOGIN_LIMIT, REGISTER_LIMIT, PASSWORD_RESET_LIMIT


router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If your email exists in our system, you will receive a password reset link."
INVALID_RESET_TOKEN = "Invalid or expired password reset token"


def _check_password(password: str) -> None:
    errors = password_strength_errors(password)
    if errors:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=errors[0])


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = None
    if is_valid_uuid(user_id):
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _session_payload(user: User, response: Response, message: str) -> dict:
    tokens = create_token_pair(user)
    set_auth_cookie(response, tokens["access_token"])
    return {
        "message": message,
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "token_type": tokens["token_type"],
        "user": user.to_dict(),
    }


async def _find_reset_token(db: AsyncSession, raw_token: str) -> PasswordResetToken:
    result = await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_token(raw_token))
    )
    reset = result.scalar_one_or_none()
    if not reset or not reset.is_usable():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_RESET_TOKEN)
    return reset


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register(
    request: Request,
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Create an unverified account and email a verification code (rate limited: 3/min)"""
    client_ip = request.client.host if request.client else "unknown"

    _check_password(user_data.password)
    if not user_data.agreed_to_terms:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You must agree to the terms and conditions"
        )

    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        logger.log_auth_event(
            event="register",
            success=False,
            user_email=user_data.email,
            reason="Email already registered",
            client_ip=client_ip
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already exists. Try another."
        )

    if user_data.subscription_plan and user_data.subscription_plan != PlanName.FREE.value:
        logger.info(f"[Auth] Ignoring requested plan {user_data.subscription_plan} for {user_data.email}; paid plans start at checkout")

    otp = generate_otp()
    user = User(
        full_name=user_data.full_name,
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        role=user_data.role,
        subscription_plan=PlanName.FREE.value,
        agreed_to_terms=True,
        is_accredited_investor=bool(user_data.is_accredited_investor),
        is_investor_profile_complete=user_data.role == UserRole.ENTREPRENEUR.value,
        is_email_verified=False,
        email_verification_otp=otp,
        email_verification_otp_expires=otp_expiry(),
    )
    db.add(user)
    await db.commit()

    sent = await email_service.send_verification_otp(user.email, user.full_name, otp)
    if not sent:
        await db.delete(user)
        await db.commit()
        logger.log_auth_event(
            event="register",
            success=False,
            user_email=user_data.email,
            reason="Verification email failed",
            client_ip=client_ip
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send verification email. Please try again."
        )

    logger.log_auth_event(
        event="register",
        success=True,
        user_email=user.email,
        client_ip=client_ip,
        user_role=user.role
    )
    return {
        "message": "Registration initiated. Check your email for verification code.",
        "user_id": str(user.id),
    }


@router.post("/verify-email")
async def verify_email(
    data: VerifyEmail,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    user = await _get_user(db, data.user_id)

    if user.is_email_verified:
        return {"message": "Email already verified"}

    if (
        not user.email_verification_otp
        or user.email_verification_otp != data.otp
        or not user.email_verification_otp_expires
        or user.email_verification_otp_expires < datetime.utcnow()
    ):
        logger.log_auth_event(event="verify_email", success=False, user_email=user.email, reason="bad otp")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification code"
        )

    user.is_email_verified = True
    user.email_verification_otp = None
    user.email_verification_otp_expires = None
    await db.commit()

    logger.log_auth_event(event="verify_email", success=True, user_email=user.email)
    return _session_payload(user, response, "Email verified successfully")


@router.post("/resend-verification")
@limiter.limit(REGISTER_LIMIT)
async def resend_verification(
    request: Request,
    data: ResendVerification,
    db: AsyncSession = Depends(get_db)
):
    user = await _get_user(db, data.user_id)
    if user.is_email_verified:
        return {"message": "Email already verified"}

    otp = generate_otp()
    user.email_verification_otp = otp
    user.email_verification_otp_expires = otp_expiry()
    await db.commit()

    if not await email_service.send_verification_otp(user.email, user.full_name, otp):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send verification email. Please try again."
        )
    return {"message": "Verification code resent. Check your email."}


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    credentials: UserLogin,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password (rate limited: 5/min)"""
    client_ip = request.client.host if request.client else "unknown"
    email = credentials.email.lower()

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user:
        logger.log_auth_event(event="login", success=False, user_email=email, reason="User not found", client_ip=client_ip)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found, incorrect email")

    if not user.is_email_verified:
        logger.log_auth_event(event="login", success=False, user_email=email, reason="Email not verified", client_ip=client_ip)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please verify your email before logging in"
        )

    if not verify_password(credentials.password, user.hashed_password):
        logger.log_auth_event(event="login", success=False, user_email=email, reason="Invalid password", client_ip=client_ip)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Password not matched")

    if not user.is_active:
        logger.log_auth_event(event="login", success=False, user_email=email, reason="Account inactive", client_ip=client_ip)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    set_user_id(str(user.id))
    logger.log_auth_event(event="login", success=True, user_email=email, client_ip=client_ip, user_role=user.role)
    return _session_payload(user, response, "User logged in successfully")


@router.post("/refresh")
async def refresh_token(
    data: RefreshTokenRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """Exchange a refresh token for a new token pair"""
    payload = decode_token(data.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")

    user_id = payload.get("sub")
    if not user_id or not is_valid_uuid(user_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return _session_payload(user, response, "Token refreshed successfully")


@router.post("/logout")
async def logout(response: Response):
    clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return {"user": current_user.to_dict()}


@router.post("/forgot-password")
@limiter.limit(PASSWORD_RESET_LIMIT)
async def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db)
):
    """Always answers the same way so registered emails cannot be probed"""
    email = data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user:
        await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
        raw_token, token_hash = generate_reset_token()
        db.add(PasswordResetToken(
            user_id=user.id,
            token_hash=token_hash,
            expires_at=datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
            used=False,
        ))
        await db.commit()

        reset_url = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password/{raw_token}"
        send_in_background(email_service.send_password_reset_email(user.email, user.full_name, reset_url))
        logger.log_auth_event(event="forgot_password", success=True, user_email=email)
    else:
        logger.log_auth_event(event="forgot_password", success=False, user_email=email, reason="Unknown email")

    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.get("/reset-password/{token}")
async def validate_reset_token(token: str, db: AsyncSession = Depends(get_db)):
    reset = await _find_reset_token(db, token)
    return {"message": "Token is valid", "user_id": str(reset.user_id)}


@router.post("/reset-password/{token}")
@limiter.limit(PASSWORD_RESET_LIMIT)
async def reset_password(
    request: Request,
    token: str,
    data: ResetPasswordRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    reset = await _find_reset_token(db, token)
    _check_password(data.password)

    user = await _get_user(db, str(reset.user_id))
    user.hashed_password = get_password_hash(data.password)
    reset.used = True
    await db.commit()

    send_in_background(email_service.send_password_reset_success_email(user.email, user.full_name))
    logger.log_auth_event(event="reset_password", success=True, user_email=user.email)
    return _session_payload(user, response, "Password reset successful. You are now logged in.")
