"""
Unit Tests for Favourites API Endpoints
Tests for: add, remove, list, check and count of saved pitches
"""
import pytest

from app.core.config import settings

API = f"/api/{settings.API_VERSION}/favourites"


class TestFavourites:
    """Test the investor favourites endpoints"""

    @pytest.mark.asyncio
    async def test_add_and_list(self, client, investor, entrepreneur, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur, company_info={"pitch_title": "Solar Roofs"})

        added = await client.post(f"{API}/", json={"pitch_id": str(pitch.id)}, headers=auth_headers(investor))
        listed = await client.get(f"{API}/", headers=auth_headers(investor))

        assert added.status_code == 201
        assert added.json()["data"]["pitch_id"] == str(pitch.id)
        data = listed.json()["data"]
        assert data["pagination"]["total"] == 1
        assert data["favourites"][0]["pitch"]["id"] == str(pitch.id)

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, client, investor, entrepreneur, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)
        body = {"pitch_id": str(pitch.id)}

        await client.post(f"{API}/", json=body, headers=auth_headers(investor))
        again = await client.post(f"{API}/", json=body, headers=auth_headers(investor))

        assert again.status_code == 400
        assert again.json()["detail"] == "Pitch already in favourites"

    @pytest.mark.asyncio
    async def test_unknown_pitch(self, client, investor, auth_headers):
        response = await client.post(f"{API}/", json={"pitch_id": "nope"}, headers=auth_headers(investor))

        assert response.status_code == 404
        assert response.json()["detail"] == "Pitch not found"

    @pytest.mark.asyncio
    async def test_check_count_and_remove(self, client, investor, entrepreneur, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)
        headers = auth_headers(investor)
        await client.post(f"{API}/", json={"pitch_id": str(pitch.id)}, headers=headers)

        check = await client.get(f"{API}/check/{pitch.id}", headers=headers)
        count = await client.get(f"{API}/count", headers=headers)
        removed = await client.delete(f"{API}/{pitch.id}", headers=headers)
        after = await client.get(f"{API}/check/{pitch.id}", headers=headers)

        assert check.json() == {"is_favourite": True}
        assert count.json() == {"count": 1}
        assert removed.json()["message"] == "Pitch removed from favourites successfully"
        assert after.json() == {"is_favourite": False}

    @pytest.mark.asyncio
    async def test_remove_missing(self, client, investor, entrepreneur, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)

        response = await client.delete(f"{API}/{pitch.id}", headers=auth_headers(investor))

        assert response.status_code == 404
        assert response.json()["detail"] == "Favourite not found"

    @pytest.mark.asyncio
    async def test_entrepreneurs_cannot_save(self, client, entrepreneur, make_pitch, auth_headers):
        pitch = await make_pitch(entrepreneur)

        response = await client.post(f"{API}/", json={"pitch_id": str(pitch.id)}, headers=auth_headers(entrepreneur))

        assert response.status_code == 403
