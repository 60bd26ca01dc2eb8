import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from restpipe.domain.errors import RenewalError
from restpipe.domain.models.auth import Credential
from restpipe.infrastructure.auth.oauth_exchange import HttpxAuthorizationExchange

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
TOKEN_URL = "https://auth.example.com/api/v1/access_token"
REVOKE_URL = "https://auth.example.com/api/v1/revoke_token"


def build_exchange(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxAuthorizationExchange(
        client_id="client-id",
        client_secret="client-secret",
        user_agent="tests/1.0",
        token_url=TOKEN_URL,
        revoke_url=REVOKE_URL,
        client=client,
        clock=lambda: NOW,
    )


@pytest.fixture
def renewable():
    return Credential("old-access", NOW, frozenset({"*"}), "the-refresh-token")


@pytest.mark.asyncio
async def test_refresh_posts_grant_with_basic_auth(renewable):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["agent"] = request.headers["User-Agent"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={
            "access_token": "new-access", "token_type": "bearer", "expires_in": 3600, "scope": "*",
        })

    credential = await build_exchange(handler).refresh(renewable)

    assert seen["url"] == TOKEN_URL
    assert seen["auth"] == "Basic " + base64.b64encode(b"client-id:client-secret").decode()
    assert seen["agent"] == "tests/1.0"
    assert seen["form"] == {"grant_type": ["refresh_token"], "refresh_token": ["the-refresh-token"]}
    assert credential.access_token == "new-access"
    assert credential.expiration == NOW + timedelta(hours=1)
    assert credential.refresh_token is None


@pytest.mark.asyncio
async def test_error_payload_is_rejected(renewable):
    exchange = build_exchange(lambda request: httpx.Response(200, json={"error": "invalid_grant"}))

    with pytest.raises(RenewalError) as excinfo:
        await exchange.refresh(renewable)

    assert excinfo.value.error == "invalid_grant"
    assert excinfo.value.status_code == 200


@pytest.mark.asyncio
async def test_non_2xx_is_rejected(renewable):
    exchange = build_exchange(lambda request: httpx.Response(401, text="Unauthorized"))

    with pytest.raises(RenewalError) as excinfo:
        await exchange.refresh(renewable)

    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected(renewable):
    exchange = build_exchange(lambda request: httpx.Response(200, json={"access_token": "x"}))

    with pytest.raises(RenewalError, match="Malformed"):
        await exchange.refresh(renewable)


@pytest.mark.asyncio
async def test_unreachable_endpoint_is_renewal_error(renewable):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RenewalError, match="unreachable"):
        await build_exchange(handler).refresh(renewable)


@pytest.mark.asyncio
async def test_refresh_requires_refresh_token():
    exchange = build_exchange(lambda request: httpx.Response(500))

    with pytest.raises(RenewalError):
        await exchange.refresh(Credential("access", NOW))


@pytest.mark.asyncio
async def test_revoke_posts_token_and_hint():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(204)

    await build_exchange(handler).revoke("the-refresh-token", "refresh_token")

    assert seen["url"] == REVOKE_URL
    assert seen["form"] == {"token": ["the-refresh-token"], "token_type_hint": ["refresh_token"]}


@pytest.mark.asyncio
async def test_revoke_failure_raises():
    exchange = build_exchange(lambda request: httpx.Response(500))

    with pytest.raises(RenewalError):
        await exchange.revoke("token", "access_token")


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    exchange = HttpxAuthorizationExchange(client_id="client-id", client=client)

    await exchange.aclose()

    assert not client.is_closed
    await client.aclose()


def test_client_id_is_required():
    with pytest.raises(ValueError):
        HttpxAuthorizationExchange(client_id="")
