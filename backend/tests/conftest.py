"""
KonnectSphere - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from faker import Faker

# Set testing environment
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['RATE_LIMIT_STORAGE_URI'] = 'memory://'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['STRIPE_SECRET_KEY'] = 'sk_test_konnectsphere'
os.environ['STRIPE_WEBHOOK_SECRET'] = 'whsec_test'
os.environ['SCHEDULED_JOBS_ENABLED'] = 'true'

from app.main import app
from app.core.database import Base, get_db
from app.core.rate_limiter import limiter
from app.core.security import get_password_hash, create_access_token
from app.models.pitch import Pitch, PitchStatus
from app.models.subscription import UserSubscription, SubscriptionStatus, PlanName
from app.models.user import User, UserRole
from app.services.email_service import email_service
from app.services.subscription_service import initialize_subscription_plans

fake = Faker()

TEST_PASSWORD = 'Str0ng!Pass'

limiter.enabled = False


def fake_email() -> str:
    return f"{fake.user_name()}{fake.random_int(1000, 99999)}@konnectsphere.net"


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database for each test"""
    engine = create_async_engine(
        'sqlite+aiosqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database dependency overridden"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sent_emails():
    """Every outgoing email is captured instead of delivered"""
    with patch.object(email_service, 'send_email', new=AsyncMock(return_value=True)) as mocked:
        yield mocked


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    async def _make_user(
        role: str = UserRole.ENTREPRENEUR.value,
        plan: str = PlanName.FREE.value,
        country: str = 'Canada',
        **fields
    ) -> User:
        user = User(
            full_name=fields.pop('full_name', fake.name()),
            email=fields.pop('email', fake_email()),
            hashed_password=get_password_hash(fields.pop('password', TEST_PASSWORD)),
            role=role,
            subscription_plan=plan,
            agreed_to_terms=True,
            is_email_verified=fields.pop('is_email_verified', True),
            is_active=True,
            country_name=country,
            **fields
        )
        db_session.add(user)
        await db_session.commit()
        return user
    return _make_user


@pytest.fixture
def subscribe(db_session: AsyncSession) -> Callable:
    """Give a user a live local subscription on a plan"""
    async def _subscribe(user: User, plan_name: str = PlanName.BASIC.value, **fields) -> UserSubscription:
        now = datetime.utcnow()
        subscription = UserSubscription(
            user_id=user.id,
            active=fields.pop('active', True),
            status=fields.pop('status', SubscriptionStatus.ACTIVE.value),
            current_period_start=fields.pop('current_period_start', now),
            current_period_end=fields.pop('current_period_end', now + timedelta(days=30)),
            stripe_id=fields.pop('stripe_id', f"sub_{fake.uuid4()[:12]}"),
            stripe_customer_id=fields.pop('stripe_customer_id', f"cus_{fake.uuid4()[:12]}"),
            pitches_used=fields.pop('pitches_used', 0),
            **fields
        )
        user.subscription_plan = plan_name
        user.stripe_customer_id = subscription.stripe_customer_id
        db_session.add(subscription)
        await db_session.commit()
        return subscription
    return _subscribe


@pytest.fixture
def make_pitch(db_session: AsyncSession) -> Callable:
    async def _make_pitch(owner: User, status: str = PitchStatus.PUBLISHED.value, **sections) -> Pitch:
        now = datetime.utcnow()
        company = {
            'pitch_title': fake.company(),
            'website': fake.url(),
            'country': owner.country_name or 'Canada',
            'phone_number': fake.phone_number(),
            'industry1': 'Technology',
            'stage': 'Seed',
            'ideal_investor_role': 'Angel',
            'raising_amount': '500000',
            'minimum_investment': '5000',
        }
        company.update(sections.pop('company_info', {}))
        pitch = Pitch(
            user_id=owner.id,
            company_info=company,
            pitch_deal=sections.pop('pitch_deal', {'summary': fake.sentence(), 'deal_type': 'Equity'}),
            package=sections.pop('package', {'selected_package': owner.subscription_plan}),
            status=status,
            is_active=True,
            completed_steps=['company-info', 'pitch-deal'],
            published_at=sections.pop('published_at', now if status == PitchStatus.PUBLISHED.value else None),
            **sections
        )
        db_session.add(pitch)
        await db_session.commit()
        return pitch
    return _make_pitch


@pytest.fixture
async def entrepreneur(make_user) -> User:
    return await make_user(role=UserRole.ENTREPRENEUR.value)


@pytest.fixture
async def investor(make_user) -> User:
    return await make_user(role=UserRole.INVESTOR.value)


@pytest.fixture
async def plans(db_session: AsyncSession):
    await initialize_subscription_plans(db_session)
    await db_session.commit()


def auth_headers_for(user: User) -> dict:
    token = create_access_token({'sub': str(user.id), 'email': user.email, 'role': user.role})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def auth_headers() -> Callable[[User], dict]:
    """Bearer headers for any user"""
    return auth_headers_for
