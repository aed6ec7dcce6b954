"""
Unit Tests for Plan Entitlements
Tests for: plan restrictions, pitch slots, pitch and investor visibility
"""
import pytest
from datetime import datetime, timedelta
from fastapi import HTTPException

from app.modules.auth.access_control import (
    PLAN_RESTRICTIONS,
    get_restrictions_for_plan,
    check_pitch_limit,
    has_active_subscription,
    require_pitch_slot,
    filter_pitches_by_subscription,
    filter_investors_by_subscription,
)
from app.models.pitch import Pitch
from app.models.subscription import PlanName, SubscriptionStatus
from app.models.user import User, UserRole


def _owner(plan: str, country: str = 'Canada') -> User:
    return User(full_name='Owner', email=f'{plan}@konnectsphere.net', role=UserRole.ENTREPRENEUR.value,
                subscription_plan=plan, country_name=country)


def _pitch(country: str) -> Pitch:
    return Pitch(company_info={'pitch_title': f'Pitch in {country}', 'country': country})


class TestPlanRestrictions:
    """Test get_restrictions_for_plan"""

    def test_free_plan_has_no_slots(self):
        restrictions = get_restrictions_for_plan(PlanName.FREE.value)

        assert restrictions.pitch_limit == 0
        assert restrictions.global_visibility is False

    def test_basic_plan_single_local_pitch(self):
        restrictions = get_restrictions_for_plan(PlanName.BASIC.value)

        assert restrictions.pitch_limit == 1
        assert restrictions.documents_allowed is True
        assert restrictions.investor_access_global is False

    def test_premium_plan_is_global(self):
        restrictions = get_restrictions_for_plan(PlanName.PREMIUM.value)

        assert restrictions.pitch_limit == 5
        assert restrictions.global_visibility is True
        assert restrictions.featured_in_search is True

    def test_missing_plan_treated_as_basic(self):
        assert get_restrictions_for_plan(None) == PLAN_RESTRICTIONS[PlanName.BASIC.value]

    def test_unknown_plan_gets_default(self):
        assert get_restrictions_for_plan('Enterprise') == PLAN_RESTRICTIONS['default']

    def test_to_dict_keys(self):
        assert set(get_restrictions_for_plan(PlanName.PREMIUM.value).to_dict()) == {
            'pitch_limit', 'global_visibility', 'documents_allowed',
            'investor_access_global', 'featured_in_search',
        }


class TestPitchLimit:
    """Test check_pitch_limit and require_pitch_slot"""

    @pytest.mark.asyncio
    async def test_investor_cannot_publish(self, db_session, investor):
        check = await check_pitch_limit(db_session, investor)

        assert check.allowed is False
        assert check.reason == "Only entrepreneurs can publish pitches"

    @pytest.mark.asyncio
    async def test_basic_plan_allows_first_pitch(self, db_session, make_user):
        user = await make_user(plan=PlanName.BASIC.value)

        check = await check_pitch_limit(db_session, user)

        assert check.allowed is True
        assert check.published_count == 0
        assert check.limit == 1

    @pytest.mark.asyncio
    async def test_basic_plan_blocks_second_pitch(self, db_session, make_user, make_pitch):
        user = await make_user(plan=PlanName.BASIC.value)
        await make_pitch(user)

        check = await check_pitch_limit(db_session, user)

        assert check.allowed is False
        assert "pitch limit of 1" in check.reason
        assert check.published_count == 1

    @pytest.mark.asyncio
    async def test_drafts_do_not_use_slots(self, db_session, make_user, make_pitch):
        user = await make_user(plan=PlanName.BASIC.value)
        await make_pitch(user, status='draft')

        check = await check_pitch_limit(db_session, user)

        assert check.allowed is True

    @pytest.mark.asyncio
    async def test_dependency_raises_403(self, db_session, entrepreneur):
        with pytest.raises(HTTPException) as exc_info:
            await require_pitch_slot(current_user=entrepreneur, db=db_session)

        assert exc_info.value.status_code == 403


class TestActiveSubscription:
    """Test has_active_subscription"""

    @pytest.mark.asyncio
    async def test_no_subscription(self, db_session, entrepreneur):
        assert await has_active_subscription(db_session, entrepreneur.id) is False

    @pytest.mark.asyncio
    async def test_live_subscription(self, db_session, entrepreneur, subscribe):
        await subscribe(entrepreneur)

        assert await has_active_subscription(db_session, entrepreneur.id) is True

    @pytest.mark.asyncio
    async def test_expired_period(self, db_session, entrepreneur, subscribe):
        await subscribe(entrepreneur, current_period_end=datetime.utcnow() - timedelta(days=1))

        assert await has_active_subscription(db_session, entrepreneur.id) is False

    @pytest.mark.asyncio
    async def test_past_due_is_not_live(self, db_session, entrepreneur, subscribe):
        await subscribe(entrepreneur, status=SubscriptionStatus.PAST_DUE.value)

        assert await has_active_subscription(db_session, entrepreneur.id) is False


class TestPitchVisibility:
    """Test filter_pitches_by_subscription"""

    def setup_method(self):
        self.premium_abroad = (_pitch('Germany'), _owner(PlanName.PREMIUM.value, 'Germany'))
        self.basic_abroad = (_pitch('Germany'), _owner(PlanName.BASIC.value, 'Germany'))
        self.basic_local = (_pitch('Canada'), _owner(PlanName.BASIC.value))
        self.all = [self.premium_abroad, self.basic_abroad, self.basic_local]

    def test_anonymous_sees_priority_owners_only(self):
        assert filter_pitches_by_subscription(self.all, None, None) == [self.premium_abroad]

    def test_investor_with_access_plan_sees_everything(self):
        viewer = User(role=UserRole.INVESTOR.value, subscription_plan=PlanName.INVESTOR_ACCESS.value)

        assert filter_pitches_by_subscription(self.all, viewer, 'Canada', has_active=True) == self.all

    def test_investor_without_live_plan_sees_own_country(self):
        viewer = User(role=UserRole.INVESTOR.value, subscription_plan=PlanName.INVESTOR_ACCESS.value)

        assert filter_pitches_by_subscription(self.all, viewer, 'Canada', has_active=False) == [self.basic_local]

    def test_basic_entrepreneur_sees_premium_and_local(self):
        viewer = User(role=UserRole.ENTREPRENEUR.value, subscription_plan=PlanName.BASIC.value)

        assert filter_pitches_by_subscription(self.all, viewer, 'Canada') == [self.premium_abroad, self.basic_local]

    def test_premium_entrepreneur_sees_everything(self):
        viewer = User(role=UserRole.ENTREPRENEUR.value, subscription_plan=PlanName.PREMIUM.value)

        assert filter_pitches_by_subscription(self.all, viewer, 'Canada') == self.all


class TestInvestorVisibility:
    """Test filter_investors_by_subscription"""

    def test_local_only_without_global_access(self):
        local = User(role=UserRole.INVESTOR.value, country_name='Canada')
        abroad = User(role=UserRole.INVESTOR.value, country_name='Japan')

        visible = filter_investors_by_subscription(
            [local, abroad], get_restrictions_for_plan(PlanName.BASIC.value), 'Canada'
        )

        assert visible == [local]

    def test_global_access(self):
        investors = [User(country_name='Canada'), User(country_name='Japan')]

        visible = filter_investors_by_subscription(
            investors, get_restrictions_for_plan(PlanName.PREMIUM.value), 'Canada'
        )

        assert visible == investors
