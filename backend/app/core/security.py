from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple
from jose import JWTError, ExpiredSignatureError, jwt
from fastapi import HTTPException, status
import bcrypt
import hashlib
import secrets

from app.core.config import settings

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
INVALID_TOKEN_MESSAGE = "Invalid authentication token. Please log in again."

PASSWORD_SPECIAL_CHARACTERS = "@$!%*?&"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # bcrypt only looks at the first 72 bytes
    password_bytes = plain_password.encode('utf-8')[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    """Hash password with BCRYPT_ROUNDS rounds"""
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def password_strength_errors(password: str) -> list:
    """Return the list of unmet password rules (empty when the password is acceptable)"""
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not any(ch.isdigit() for ch in password):
        errors.append("Password must contain at least one number")
    if not any(ch.islower() for ch in password):
        errors.append("Password must contain at least one lowercase letter")
    if not any(ch.isupper() for ch in password):
        errors.append("Password must contain at least one uppercase letter")
    if not any(ch in PASSWORD_SPECIAL_CHARACTERS for ch in password):
        errors.append("Password must contain at least one special character")
    return errors


def _encode(data: Dict[str, Any], expire: datetime, token_type: str) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": expire, "type": token_type})
    return jwt.encode(to_encode, settings.effective_jwt_secret, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return _encode(data, expire, "access")


def create_refresh_token(data: Dict[str, Any]) -> str:
    expire = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(data, expire, "refresh")


def create_token_pair(user) -> Dict[str, str]:
    """Access + refresh tokens for a user row"""
    claims = {"sub": str(user.id), "email": user.email, "role": user.role}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token({"sub": str(user.id)}),
        "token_type": "bearer",
    }


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode a JWT.

    Raises 401 with a message telling expired sessions apart from bad tokens.
    """
    try:
        return jwt.decode(token, settings.effective_jwt_secret, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=SESSION_EXPIRED_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_TOKEN_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        )


def generate_otp(length: int = 6) -> str:
    """Numeric one-time code for email verification"""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def otp_expiry(minutes: Optional[int] = None) -> datetime:
    return datetime.utcnow() + timedelta(minutes=minutes or settings.OTP_EXPIRE_MINUTES)


def hash_token(raw_token: str) -> str:
    """sha256 hex digest; only the digest of reset tokens is stored"""
    return hashlib.sha256(raw_token.encode('utf-8')).hexdigest()


def generate_reset_token() -> Tuple[str, str]:
    """Return (raw token for the email link, digest for the database)"""
    raw = secrets.token_hex(32)
    return raw, hash_token(raw)
