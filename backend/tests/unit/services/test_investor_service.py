"""
Unit Tests for Investor Service
Tests for: investor search matching, cards, plan visibility, preferred pitches
"""
import pytest

from app.models.subscription import PlanName
from app.models.user import User, UserRole
from app.services.investor_service import (
    InvestorSearch,
    matches_search,
    range_overlaps,
    investor_card,
    search_investors,
    pitch_in_investor_range,
    preferred_pitches,
)
from app.models.pitch import Pitch


def _investor(**prefs) -> User:
    return User(
        full_name='Morgan Lee',
        role=UserRole.INVESTOR.value,
        country_name=prefs.pop('country', 'Canada'),
        city_name='Toronto',
        investment_preferences={
            'interested_industries': prefs.pop('industries', ['Clean Energy']),
            'investment_stages': prefs.pop('stages', ['Seed']),
            'investment_range_min': prefs.pop('range_min', 10000),
            'investment_range_max': prefs.pop('range_max', 2000000),
        },
        profile_info={'about_me': 'Climate investor', 'areas_of_expertise': ['Hardware'], 'previous_investments': 4},
    )


class TestMatching:
    """Test matches_search and range_overlaps"""

    def test_query_matches_profile_text(self):
        assert matches_search(_investor(), InvestorSearch(query='climate')) is True
        assert matches_search(_investor(), InvestorSearch(query='biotech')) is False

    def test_industry_partial_match(self):
        assert matches_search(_investor(), InvestorSearch(industries=['energy'])) is True

    def test_stage_and_country(self):
        assert matches_search(_investor(), InvestorSearch(stages=['Series A'])) is False
        assert matches_search(_investor(), InvestorSearch(countries=['Japan'])) is False

    @pytest.mark.parametrize("low,high,expected", [
        (5000, 20000, True),
        (3000000, None, False),
        (None, 5000, False),
    ])
    def test_range_overlap(self, low, high, expected):
        assert range_overlaps(_investor(), low, high) is expected

    def test_no_range_never_overlaps(self):
        assert range_overlaps(_investor(range_min=None, range_max=None), 0, 100) is False


class TestInvestorCard:
    """Test investor_card"""

    def test_card_fields(self):
        card = investor_card(_investor())

        assert card['location'] == 'Toronto, Canada'
        assert card['investment_range'] == '$10K - $2M'
        assert card['past_investments'] == 4
        assert card['interests'] == [{'id': 'expertise-0', 'name': 'Hardware'}]

    def test_missing_range(self):
        assert investor_card(_investor(range_min=None))['investment_range'] == 'Range not specified'


class TestSearchInvestors:
    """Test search_investors"""

    @pytest.mark.asyncio
    async def test_basic_entrepreneur_sees_local_investors(self, db_session, make_user):
        await make_user(role=UserRole.INVESTOR.value, country='Canada', full_name='Local Investor')
        await make_user(role=UserRole.INVESTOR.value, country='Japan', full_name='Remote Investor')
        viewer = await make_user(plan=PlanName.BASIC.value, country='Canada')

        result = await search_investors(db_session, viewer, InvestorSearch())

        assert [i['name'] for i in result['investors']] == ['Local Investor']
        assert result['pagination']['total_items'] == 1

    @pytest.mark.asyncio
    async def test_premium_entrepreneur_sees_all(self, db_session, make_user):
        await make_user(role=UserRole.INVESTOR.value, country='Canada')
        await make_user(role=UserRole.INVESTOR.value, country='Japan')
        viewer = await make_user(plan=PlanName.PREMIUM.value)

        result = await search_investors(db_session, viewer, InvestorSearch())

        assert result['pagination']['total_items'] == 2

    @pytest.mark.asyncio
    async def test_unverified_investors_excluded(self, db_session, make_user):
        await make_user(role=UserRole.INVESTOR.value, is_email_verified=False)

        result = await search_investors(db_session, None, InvestorSearch())

        assert result['investors'] == []


class TestPreferredPitches:
    """Test preferred_pitches"""

    def test_range_check(self):
        assert pitch_in_investor_range(Pitch(company_info={'minimum_investment': '$5,000'}), 10000) is True
        assert pitch_in_investor_range(Pitch(company_info={'minimum_investment': '50000'}), 10000) is False
        assert pitch_in_investor_range(Pitch(company_info={}), 10000) is True

    @pytest.mark.asyncio
    async def test_no_preferences(self, db_session, investor):
        investor.investment_preferences = None

        assert await preferred_pitches(db_session, investor) is None

    @pytest.mark.asyncio
    async def test_matching_pitches(self, db_session, make_user, make_pitch):
        owner = await make_user(plan=PlanName.BASIC.value, country='Canada')
        await make_pitch(owner, company_info={'pitch_title': 'Grid Storage', 'industry1': 'Clean Energy'})
        await make_pitch(owner, company_info={'pitch_title': 'Fintech App', 'industry1': 'Finance'})
        investor = await make_user(
            role=UserRole.INVESTOR.value,
            investment_preferences={
                'pitch_countries': ['Canada'],
                'interested_industries': ['Clean Energy'],
                'investment_range_max': 100000,
            },
        )

        cards = await preferred_pitches(db_session, investor)

        assert [c['company_info']['pitch_title'] for c in cards] == ['Grid Storage']
