"""
Unit tests for caller identity and ownership checks.

Tests cover:
- Authorization header parsing
- Token resolution against the Supabase Auth API
- Ownership gate
"""

import httpx
import pytest

from contract_analyzer.services.identity import (
    Identity,
    SupabaseIdentityService,
    authorize_owner,
    parse_bearer_token,
)
from contract_analyzer.utils.errors import Forbidden, Unauthenticated

SUPABASE_URL = "https://project.supabase.co"


def identity_service(handler) -> SupabaseIdentityService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseIdentityService(SUPABASE_URL, "anon-key", client=client)


class TestParseBearerToken:
    """Test Authorization header parsing."""

    def test_valid_header(self):
        assert parse_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize("header", [None, "", "Basic dXNlcjpwYXNz", "Bearer ", "bearer abc", "abc"])
    def test_invalid_headers(self, header):
        with pytest.raises(Unauthenticated) as exc_info:
            parse_bearer_token(header)

        assert exc_info.value.message == "Missing or invalid Authorization header"
        assert exc_info.value.status_code == 401


class TestSupabaseIdentityService:
    """Test token resolution."""

    @pytest.mark.asyncio
    async def test_resolves_user(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["authorization"] = request.headers["authorization"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json={"id": "user-owner", "email": "owner@example.com"})

        identity = await identity_service(handler).resolve("Bearer good-token")

        assert identity == Identity(id="user-owner", email="owner@example.com")
        assert seen == {
            "url": f"{SUPABASE_URL}/auth/v1/user",
            "authorization": "Bearer good-token",
            "apikey": "anon-key",
        }

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        service = identity_service(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}))

        with pytest.raises(Unauthenticated, match="Invalid or expired token"):
            await service.resolve("Bearer expired")

    @pytest.mark.asyncio
    async def test_response_without_user_id(self):
        service = identity_service(lambda request: httpx.Response(200, json={"email": "x@example.com"}))

        assert await service.get_user("token") is None

    @pytest.mark.asyncio
    async def test_unreachable_identity_service(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(Unauthenticated, match="Invalid or expired token"):
            await identity_service(handler).resolve("Bearer token")

    @pytest.mark.asyncio
    async def test_malformed_header_skips_lookup(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"id": "user-owner"})

        with pytest.raises(Unauthenticated, match="Missing or invalid"):
            await identity_service(handler).resolve("Token abc")

        assert calls == []


class TestAuthorizeOwner:
    """Test the ownership gate."""

    def test_owner_allowed(self, owner, make_record):
        authorize_owner(owner, make_record())

    def test_non_owner_forbidden(self, other_user, make_record):
        with pytest.raises(Forbidden) as exc_info:
            authorize_owner(other_user, make_record())

        assert exc_info.value.status_code == 403
