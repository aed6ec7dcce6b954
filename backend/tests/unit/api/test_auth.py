"""
Unit Tests for Auth API Endpoints
Tests for: register, verify-email, login, refresh, me, forgot/reset password
"""
import pytest
from datetime import datetime, timedelta
from faker import Faker
from sqlalchemy import select

from app.core.config import settings
from app.core.security import create_refresh_token, generate_reset_token, verify_password
from app.models.password_reset import PasswordResetToken
from app.models.user import User, UserRole
from tests.conftest import TEST_PASSWORD, fake_email

fake = Faker()

API = f"/api/{settings.API_VERSION}/auth"


def _registration(**overrides) -> dict:
    data = {
        "full_name": "Amara Okafor",
        "email": fake_email(),
        "password": TEST_PASSWORD,
        "role": UserRole.ENTREPRENEUR.value,
        "agreed_to_terms": True,
    }
    data.update(overrides)
    return data


class TestRegister:
    """Test POST /auth/register"""

    @pytest.mark.asyncio
    async def test_register_sends_code(self, client, db_session, sent_emails):
        payload = _registration()

        response = await client.post(f"{API}/register", json=payload)

        assert response.status_code == 201
        user_id = response.json()["user_id"]
        user = (await db_session.execute(select(User).where(User.id == user_id))).scalar_one()
        assert user.is_email_verified is False
        assert len(user.email_verification_otp) == 6
        assert user.subscription_plan == "Free"
        assert sent_emails.await_args.args[0] == payload["email"]

    @pytest.mark.parametrize("plan", ["Investor Access Plan", "Premium", "Basic"])
    @pytest.mark.asyncio
    async def test_paid_plan_not_granted(self, client, db_session, plan):
        payload = _registration(role=UserRole.INVESTOR.value, subscription_plan=plan)

        response = await client.post(f"{API}/register", json=payload)

        assert response.status_code == 201
        user = (await db_session.execute(select(User).where(User.id == response.json()["user_id"]))).scalar_one()
        assert user.subscription_plan == "Free"

    @pytest.mark.asyncio
    async def test_weak_password_first_rule(self, client):
        response = await client.post(f"{API}/register", json=_registration(password="short"))

        assert response.status_code == 400
        assert response.json()["detail"] == "Password must be at least 8 characters long"

    @pytest.mark.asyncio
    async def test_terms_required(self, client):
        response = await client.post(f"{API}/register", json=_registration(agreed_to_terms=False))

        assert response.status_code == 400
        assert response.json()["detail"] == "You must agree to the terms and conditions"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, entrepreneur):
        response = await client.post(f"{API}/register", json=_registration(email=entrepreneur.email))

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already exists. Try another."

    @pytest.mark.asyncio
    async def test_email_failure_rolls_back(self, client, db_session, sent_emails):
        sent_emails.return_value = False
        payload = _registration()

        response = await client.post(f"{API}/register", json=payload)

        assert response.status_code == 500
        existing = await db_session.execute(select(User).where(User.email == payload["email"]))
        assert existing.scalar_one_or_none() is None

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, client):
        response = await client.post(f"{API}/register", json=_registration(role="admin"))

        assert response.status_code == 422


class TestVerifyEmail:
    """Test POST /auth/verify-email"""

    @pytest.mark.asyncio
    async def test_correct_code_logs_in(self, client, make_user):
        user = await make_user(
            is_email_verified=False,
            email_verification_otp="123456",
            email_verification_otp_expires=datetime.utcnow() + timedelta(minutes=5),
        )

        response = await client.post(f"{API}/verify-email", json={"user_id": str(user.id), "otp": "123456"})

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["user"]["is_email_verified"] is True

    @pytest.mark.asyncio
    async def test_expired_code(self, client, make_user):
        user = await make_user(
            is_email_verified=False,
            email_verification_otp="123456",
            email_verification_otp_expires=datetime.utcnow() - timedelta(minutes=1),
        )

        response = await client.post(f"{API}/verify-email", json={"user_id": str(user.id), "otp": "123456"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired verification code"

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.post(f"{API}/verify-email", json={"user_id": "not-a-uuid", "otp": "123456"})

        assert response.status_code == 404


class TestLogin:
    """Test POST /auth/login"""

    @pytest.mark.asyncio
    async def test_login_success_sets_cookie(self, client, entrepreneur):
        response = await client.post(f"{API}/login", json={"email": entrepreneur.email, "password": TEST_PASSWORD})

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == entrepreneur.email
        assert settings.AUTH_COOKIE_NAME in response.cookies

    @pytest.mark.asyncio
    async def test_unknown_email(self, client):
        response = await client.post(f"{API}/login", json={"email": fake_email(), "password": TEST_PASSWORD})

        assert response.status_code == 404
        assert response.json()["detail"] == "User not found, incorrect email"

    @pytest.mark.asyncio
    async def test_unverified_email(self, client, make_user):
        user = await make_user(is_email_verified=False)

        response = await client.post(f"{API}/login", json={"email": user.email, "password": TEST_PASSWORD})

        assert response.status_code == 403
        assert response.json()["detail"] == "Please verify your email before logging in"

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, entrepreneur):
        response = await client.post(f"{API}/login", json={"email": entrepreneur.email, "password": "Wr0ng!Pass"})

        assert response.status_code == 403
        assert response.json()["detail"] == "Password not matched"


class TestSession:
    """Test /auth/me, /auth/refresh and /auth/logout"""

    @pytest.mark.asyncio
    async def test_me_requires_auth(self, client):
        response = await client.get(f"{API}/me")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me_with_bearer(self, client, investor, auth_headers):
        response = await client.get(f"{API}/me", headers=auth_headers(investor))

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "investor"

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, client, entrepreneur):
        refresh = create_refresh_token({"sub": str(entrepreneur.id)})

        response = await client.post(f"{API}/refresh", json={"refresh_token": refresh})

        assert response.status_code == 200
        assert response.json()["access_token"]

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, client, entrepreneur, auth_headers):
        access = auth_headers(entrepreneur)["Authorization"].split(" ")[1]

        response = await client.post(f"{API}/refresh", json={"refresh_token": access})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout(self, client):
        response = await client.post(f"{API}/logout")

        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"


class TestPasswordReset:
    """Test forgot-password and reset-password"""

    @pytest.mark.asyncio
    async def test_forgot_password_same_answer(self, client, entrepreneur, db_session):
        known = await client.post(f"{API}/forgot-password", json={"email": entrepreneur.email})
        unknown = await client.post(f"{API}/forgot-password", json={"email": fake_email()})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        tokens = (await db_session.execute(select(PasswordResetToken))).scalars().all()
        assert len(tokens) == 1

    @pytest.mark.asyncio
    async def test_reset_with_valid_token(self, client, db_session, entrepreneur):
        raw, digest = generate_reset_token()
        db_session.add(PasswordResetToken(
            user_id=entrepreneur.id,
            token_hash=digest,
            expires_at=datetime.utcnow() + timedelta(minutes=30),
            used=False,
        ))
        await db_session.commit()

        check = await client.get(f"{API}/reset-password/{raw}")
        response = await client.post(f"{API}/reset-password/{raw}", json={"password": "N3w!Secret"})
        reused = await client.post(f"{API}/reset-password/{raw}", json={"password": "N3w!Secret"})

        assert check.json()["user_id"] == str(entrepreneur.id)
        assert response.status_code == 200
        assert verify_password("N3w!Secret", entrepreneur.hashed_password)
        assert reused.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        response = await client.get(f"{API}/reset-password/{'0' * 64}")

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired password reset token"
