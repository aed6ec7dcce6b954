"""
Unit Tests for HTTP Middleware
Tests for: request ids, security headers, body size limit, logging skip list
"""
import pytest

from app.core.config import settings
from app.core.middleware import should_skip_logging


class TestMiddleware:
    """Test the middleware stack through the app"""

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get("/", headers={"X-Request-ID": "abc12345"})

        assert response.headers["X-Request-ID"] == "abc12345"
        assert response.headers["X-Response-Time"].endswith("ms")

    @pytest.mark.asyncio
    async def test_request_id_generated(self, client):
        response = await client.get("/")

        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        response = await client.get("/")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    @pytest.mark.asyncio
    async def test_oversized_body_rejected(self, client):
        response = await client.post(
            f"/api/{settings.API_VERSION}/contact",
            content=b"{}",
            headers={"Content-Length": str(settings.MAX_UPLOAD_SIZE + 1), "Content-Type": "application/json"},
        )

        assert response.status_code == 413

    @pytest.mark.parametrize("path,expected", [
        ("/health", True),
        ("/static/logo.png", True),
        ("/api/v1/pitches/published", False),
    ])
    def test_skip_logging(self, path, expected):
        assert should_skip_logging(path) is expected
