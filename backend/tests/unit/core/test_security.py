"""
Unit Tests for Security Module
Tests for: password hashing, password rules, JWT tokens, OTP and reset tokens
"""
import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from jose import jwt
from fastapi import HTTPException

from app.core.security import (
    verify_password,
    get_password_hash,
    password_strength_errors,
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_token,
    generate_otp,
    otp_expiry,
    hash_token,
    generate_reset_token,
    SESSION_EXPIRED_MESSAGE,
    INVALID_TOKEN_MESSAGE,
)
from app.core.config import settings


class TestPasswordHashing:
    """Test password hashing functions"""

    def test_hash_password_returns_different_value(self):
        hashed = get_password_hash("Str0ng!Pass")

        assert hashed != "Str0ng!Pass"
        assert len(hashed) > 0

    def test_hash_password_different_each_time(self):
        """Bcrypt generates a new salt per hash"""
        assert get_password_hash("Str0ng!Pass") != get_password_hash("Str0ng!Pass")

    def test_verify_password_correct(self):
        hashed = get_password_hash("Str0ng!Pass")

        assert verify_password("Str0ng!Pass", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = get_password_hash("Str0ng!Pass")

        assert verify_password("Wr0ng!Pass", hashed) is False

    def test_hash_long_password_truncated(self):
        """Bcrypt has a 72 byte limit"""
        long_password = "A1!a" * 30
        hashed = get_password_hash(long_password)

        assert verify_password(long_password, hashed) is True


class TestPasswordRules:
    """Test password_strength_errors"""

    def test_strong_password_has_no_errors(self):
        assert password_strength_errors("Str0ng!Pass") == []

    @pytest.mark.parametrize("password,expected", [
        ("Sh0rt!", "Password must be at least 8 characters long"),
        ("NoNumbers!!", "Password must contain at least one number"),
        ("UPPER0NLY!", "Password must contain at least one lowercase letter"),
        ("lower0nly!", "Password must contain at least one uppercase letter"),
        ("NoSpecial123", "Password must contain at least one special character"),
    ])
    def test_each_rule_reported(self, password, expected):
        assert expected in password_strength_errors(password)

    def test_only_listed_special_characters_count(self):
        assert "Password must contain at least one special character" in password_strength_errors("Abcdefg1#")


class TestJWTTokens:
    """Test JWT token creation and decoding"""

    def test_access_token_round_trip(self):
        token = create_access_token({"sub": "user-123", "role": "investor"})

        payload = decode_token(token)

        assert payload["sub"] == "user-123"
        assert payload["role"] == "investor"
        assert payload["type"] == "access"

    def test_access_token_default_expiry_is_three_days(self):
        token = create_access_token({"sub": "user-123"})
        payload = jwt.decode(token, settings.effective_jwt_secret, algorithms=[settings.JWT_ALGORITHM])

        expires = datetime.utcfromtimestamp(payload["exp"])
        expected = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        assert abs((expires - expected).total_seconds()) < 10

    def test_refresh_token_type(self):
        payload = decode_token(create_refresh_token({"sub": "user-123"}))

        assert payload["type"] == "refresh"

    def test_token_pair_for_user(self):
        user = SimpleNamespace(id="abc", email="founder@konnectsphere.net", role="entrepreneur")

        pair = create_token_pair(user)

        assert pair["token_type"] == "bearer"
        assert decode_token(pair["access_token"])["email"] == "founder@konnectsphere.net"
        assert decode_token(pair["refresh_token"])["sub"] == "abc"

    def test_expired_token_message(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-5))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == SESSION_EXPIRED_MESSAGE

    def test_invalid_token_message(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token("not-a-jwt")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == INVALID_TOKEN_MESSAGE

    def test_token_signed_with_other_secret_rejected(self):
        token = jwt.encode({"sub": "x", "type": "access"}, "another-secret", algorithm="HS256")

        with pytest.raises(HTTPException):
            decode_token(token)


class TestOneTimeCodes:
    """Test OTP and password reset token helpers"""

    def test_otp_is_six_digits(self):
        otp = generate_otp()

        assert len(otp) == 6
        assert otp.isdigit()

    def test_otp_expiry_uses_setting(self):
        delta = otp_expiry() - datetime.utcnow()

        assert timedelta(minutes=settings.OTP_EXPIRE_MINUTES - 1) < delta <= timedelta(minutes=settings.OTP_EXPIRE_MINUTES)

    def test_reset_token_digest_matches(self):
        raw, digest = generate_reset_token()

        assert len(raw) == 64
        assert digest == hash_token(raw)
        assert digest != raw
