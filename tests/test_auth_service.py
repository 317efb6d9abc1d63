import asyncio

import httpx
import pytest

from app.config import settings
from app.services.auth_service import invalidate_token, parse_bearer, validate_token


def run_validate(handler):
    return asyncio.run(validate_token("abc", transport=httpx.MockTransport(handler)))


@pytest.fixture(autouse=True)
def _auth_urls(monkeypatch):
    monkeypatch.setattr(settings, "token_validation_url", "http://auth.local/validate")
    monkeypatch.setattr(settings, "token_invalidation_url", "http://auth.local/invalidate")


class TestParseBearer:
    def test_valid_header(self):
        assert parse_bearer("Bearer abc") == "abc"
        assert parse_bearer("bearer abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "abc", "Basic abc", "Bearer "])
    def test_invalid_header(self, header):
        assert parse_bearer(header) is None


class TestValidateToken:
    def test_valid_token(self):
        result = run_validate(lambda request: httpx.Response(200, json={"isValid": True, "data": {"expiresAt": "x"}}))
        assert result.ok is True

    def test_sends_bearer_header(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"isValid": True})

        run_validate(handler)
        assert seen["auth"] == "Bearer abc"

    def test_not_valid_body(self):
        result = run_validate(lambda request: httpx.Response(200, json={"isValid": False}))
        assert result.ok is False
        assert result.error_code == "invalid"
        assert result.status_code == 401

    def test_rejection_passes_status_and_details(self):
        result = run_validate(lambda request: httpx.Response(403, json={"message": "expired"}))
        assert result.error_code == "rejected"
        assert result.status_code == 403
        assert result.details == {"message": "expired"}

    def test_unreachable_service(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = run_validate(handler)
        assert result.error_code == "unreachable"
        assert result.status_code == 500

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "token_validation_url", None)
        result = run_validate(lambda request: httpx.Response(200, json={"isValid": True}))
        assert result.error_code == "not_configured"
        assert result.status_code == 500


class TestInvalidateToken:
    def test_posts_to_invalidation_url(self):
        seen = []

        def handler(request):
            seen.append((request.method, str(request.url), request.headers.get("authorization")))
            return httpx.Response(200, json={})

        asyncio.run(invalidate_token("abc", transport=httpx.MockTransport(handler)))
        assert seen == [("POST", "http://auth.local/invalidate", "Bearer abc")]

    def test_failure_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        asyncio.run(invalidate_token("abc", transport=httpx.MockTransport(handler)))
