"""
Unit Tests for Contact API Endpoint
"""
import pytest
from faker import Faker

from app.core.config import settings

fake = Faker()

API = f"/api/{settings.API_VERSION}/contact"


def _form(**overrides) -> dict:
    form = {
        "name": fake.name(),
        "email": "founder@konnectsphere.net",
        "subject": "billing-question",
        "message": "My invoice shows the wrong plan.",
    }
    form.update(overrides)
    return form


class TestContactForm:
    """Test POST /contact"""

    @pytest.mark.asyncio
    async def test_forwards_to_support(self, client, sent_emails):
        response = await client.post(API, json=_form())

        assert response.status_code == 200
        assert response.json()["message"].startswith("Your message has been sent successfully")
        forwarded = sent_emails.await_args_list[0].args
        assert forwarded[0] == settings.CONTACT_EMAIL
        assert forwarded[1].startswith("Contact Form: billing-question")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,detail", [
        ({"message": "   "}, "All fields are required"),
        ({"name": None}, "All fields are required"),
        ({"email": "not-an-email"}, "Please provide a valid email address"),
        ({"subject": "investment-advice"}, "Invalid subject selected"),
    ])
    async def test_validation(self, client, sent_emails, overrides, detail):
        response = await client.post(API, json=_form(**overrides))

        assert response.status_code == 400
        assert response.json()["detail"] == detail
        sent_emails.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_failure(self, client, sent_emails):
        sent_emails.return_value = False

        response = await client.post(API, json=_form())

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to send your message. Please try again later."
