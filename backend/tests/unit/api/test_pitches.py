"""
Unit Tests for Pitch API Endpoints
Tests for: wizard steps, auto-save, publishing rules, discovery, public view, deletion
"""
import pytest
from faker import Faker

from app.core.config import settings
from app.models.pitch import PitchStatus
from app.models.subscription import PlanName
from app.models.user import UserRole

fake = Faker()

API = f"/api/{settings.API_VERSION}/pitches"

COMPANY_INFO = {
    "pitch_title": "Tidal Power Co",
    "website": "https://tidal.example",
    "country": "Canada",
    "phone_number": "+1 555 0100",
    "industry1": "Clean Energy",
    "stage": "Seed",
    "ideal_investor_role": "Angel",
    "raising_amount": "750000",
    "minimum_investment": "10000",
}


class TestWizardSteps:
    """Test the draft wizard endpoints"""

    @pytest.mark.asyncio
    async def test_company_info_creates_draft(self, client, entrepreneur, auth_headers):
        response = await client.put(f"{API}/company-info", json=COMPANY_INFO, headers=auth_headers(entrepreneur))

        assert response.status_code == 200
        assert response.json()["data"]["completed_steps"] == ["company-info"]

        draft = await client.get(f"{API}/draft", headers=auth_headers(entrepreneur))
        assert draft.json()["data"]["company_info"]["pitch_title"] == "Tidal Power Co"

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, client, entrepreneur, auth_headers):
        partial = {k: v for k, v in COMPANY_INFO.items() if k not in ("website", "stage")}

        response = await client.put(f"{API}/company-info", json=partial, headers=auth_headers(entrepreneur))

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields: website, stage"

    @pytest.mark.asyncio
    async def test_team_requires_members(self, client, entrepreneur, auth_headers):
        response = await client.put(f"{API}/team", json={"members": "nobody"}, headers=auth_headers(entrepreneur))

        assert response.status_code == 400
        assert response.json()["detail"] == "Members data is required"

    @pytest.mark.asyncio
    async def test_documents_are_entrepreneur_only(self, client, investor, auth_headers):
        response = await client.put(f"{API}/documents", json={"pitch_deck": None}, headers=auth_headers(investor))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_no_draft(self, client, entrepreneur, auth_headers):
        response = await client.get(f"{API}/draft", headers=auth_headers(entrepreneur))

        assert response.json() == {"message": "No draft found", "data": None}

    @pytest.mark.asyncio
    async def test_wizard_requires_login(self, client):
        response = await client.put(f"{API}/media", json={})

        assert response.status_code == 401


class TestAutoSave:
    """Test POST /pitches/auto-save"""

    @pytest.mark.asyncio
    async def test_empty_payload_not_saved(self, client, entrepreneur, auth_headers):
        response = await client.post(
            f"{API}/auto-save",
            json={"step_name": "company-info", "step_data": {"pitch_title": "  "}},
            headers=auth_headers(entrepreneur),
        )

        assert response.status_code == 200
        assert response.json()["data"] is None

    @pytest.mark.asyncio
    async def test_content_saved_to_draft(self, client, entrepreneur, auth_headers):
        response = await client.post(
            f"{API}/auto-save",
            json={"step_name": "pitch-deal", "step_data": {"summary": "Tidal turbines"}},
            headers=auth_headers(entrepreneur),
        )

        assert response.json()["data"]["step_name"] == "pitch-deal"
        draft = await client.get(f"{API}/draft", headers=auth_headers(entrepreneur))
        assert draft.json()["data"]["pitch_deal"] == {"summary": "Tidal turbines"}

    @pytest.mark.asyncio
    async def test_unknown_step_rejected(self, client, entrepreneur, auth_headers):
        response = await client.post(
            f"{API}/auto-save",
            json={"step_name": "pricing", "step_data": {"tier": "gold"}},
            headers=auth_headers(entrepreneur),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Unknown step: pricing"
        draft = await client.get(f"{API}/draft", headers=auth_headers(entrepreneur))
        assert draft.json()["data"] is None


class TestPublish:
    """Test PUT /pitches/package"""

    @pytest.mark.asyncio
    async def test_free_plan_has_no_slot(self, client, entrepreneur, auth_headers):
        response = await client.put(
            f"{API}/package",
            json={"selected_package": "Basic", "agree_to_terms": True},
            headers=auth_headers(entrepreneur),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_plan_without_subscription(self, client, make_user, auth_headers):
        user = await make_user(plan=PlanName.BASIC.value)

        response = await client.put(
            f"{API}/package",
            json={"selected_package": "Basic", "agree_to_terms": True},
            headers=auth_headers(user),
        )

        assert response.status_code == 403
        assert "purchase a subscription plan" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_terms_required(self, client, make_user, subscribe, auth_headers):
        user = await make_user(plan=PlanName.BASIC.value)
        await subscribe(user)

        response = await client.put(f"{API}/package", json={"selected_package": "Basic"}, headers=auth_headers(user))

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_no_draft(self, client, make_user, subscribe, auth_headers):
        user = await make_user(plan=PlanName.BASIC.value)
        await subscribe(user)

        response = await client.put(
            f"{API}/package",
            json={"selected_package": "Basic", "agree_to_terms": True},
            headers=auth_headers(user),
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No draft pitch found to publish"

    @pytest.mark.asyncio
    async def test_publish_then_limit_reached(self, client, make_user, subscribe, auth_headers):
        user = await make_user(plan=PlanName.BASIC.value)
        await subscribe(user)
        headers = auth_headers(user)
        await client.put(f"{API}/company-info", json=COMPANY_INFO, headers=headers)

        published = await client.put(
            f"{API}/package", json={"selected_package": "Basic", "agree_to_terms": True}, headers=headers
        )
        await client.put(f"{API}/company-info", json=COMPANY_INFO, headers=headers)
        second = await client.put(
            f"{API}/package", json={"selected_package": "Basic", "agree_to_terms": True}, headers=headers
        )

        assert published.status_code == 200
        assert published.json()["data"]["status"] == PitchStatus.PUBLISHED.value
        assert published.json()["data"]["published_count"] == 1
        assert second.status_code == 403
        assert "pitch limit of 1" in second.json()["detail"]

    @pytest.mark.asyncio
    async def test_publishing_rights(self, client, make_user, subscribe, auth_headers):
        user = await make_user(plan=PlanName.PREMIUM.value)
        await subscribe(user, PlanName.PREMIUM.value)

        response = await client.get(f"{API}/publishing-rights", headers=auth_headers(user))

        assert response.json()["can_publish"] is True


class TestDiscovery:
    """Test published listing and public pitch view"""

    @pytest.mark.asyncio
    async def test_published_listing_shape(self, client, make_user, subscribe, make_pitch):
        owner = await make_user(plan=PlanName.PREMIUM.value)
        await subscribe(owner, PlanName.PREMIUM.value)
        await make_pitch(owner)

        response = await client.get(f"{API}/published", params={"page": 1, "limit": 5})

        data = response.json()["data"]
        assert len(data["pitches"]) == 1
        assert data["pagination"]["current_page"] == 1
        assert data["meta"]["premium_count"] == 1
        assert data["meta"]["viewer_role"] == "unknown"

    @pytest.mark.asyncio
    async def test_search_filter(self, client, make_user, subscribe, make_pitch):
        owner = await make_user(plan=PlanName.BASIC.value)
        await subscribe(owner)
        await make_pitch(owner, company_info={"pitch_title": "Quantum Bakery"})

        hit = await client.get(f"{API}/published", params={"search": "bakery"})
        miss = await client.get(f"{API}/published", params={"search": "rocket"})

        assert len(hit.json()["data"]["pitches"]) == 1
        assert miss.json()["data"]["pitches"] == []

    @pytest.mark.asyncio
    async def test_count(self, client, entrepreneur, make_pitch):
        await make_pitch(entrepreneur)
        await make_pitch(entrepreneur, status=PitchStatus.DRAFT.value)

        response = await client.get(f"{API}/count")

        assert response.json() == {"count": 1}

    @pytest.mark.asyncio
    async def test_public_view_for_investor(self, client, entrepreneur, investor, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)

        response = await client.get(f"{API}/public/{pitch.id}", headers=auth_headers(investor))

        data = response.json()["data"]
        assert data["user"]["id"] == str(entrepreneur.id)
        assert "team" in data

    @pytest.mark.asyncio
    async def test_competitor_sees_preview(self, client, entrepreneur, make_user, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)
        competitor = await make_user(role=UserRole.ENTREPRENEUR.value)

        response = await client.get(f"{API}/public/{pitch.id}", headers=auth_headers(competitor))

        assert response.json()["data"]["restricted"] is True

    @pytest.mark.asyncio
    async def test_draft_not_public(self, client, entrepreneur, make_pitch):
        pitch = await make_pitch(entrepreneur, status=PitchStatus.DRAFT.value)

        response = await client.get(f"{API}/public/{pitch.id}")

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_id(self, client):
        response = await client.get(f"{API}/public/not-a-uuid")

        assert response.status_code == 404


class TestOwnership:
    """Test my-pitch and delete"""

    @pytest.mark.asyncio
    async def test_other_users_pitch_forbidden(self, client, entrepreneur, make_user, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)
        other = await make_user()

        response = await client.get(f"{API}/my-pitch/{pitch.id}", headers=auth_headers(other))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_own_pitch(self, client, entrepreneur, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)

        response = await client.delete(f"{API}/{pitch.id}", headers=auth_headers(entrepreneur))
        mine = await client.get(f"{API}/my-pitches", headers=auth_headers(entrepreneur))

        assert response.json()["data"]["was_published"] is True
        assert mine.json()["data"] == []

    @pytest.mark.asyncio
    async def test_cannot_delete_others(self, client, entrepreneur, investor, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)

        response = await client.delete(f"{API}/{pitch.id}", headers=auth_headers(investor))

        assert response.status_code == 404
