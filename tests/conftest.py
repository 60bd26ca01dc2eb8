import asyncio
from dataclasses import replace
from datetime import timedelta
from typing import List, Optional

import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock

from restpipe.domain.interfaces.auth_exchange import AuthorizationExchange
from restpipe.domain.interfaces.transport import StreamConnection, Transport
from restpipe.domain.models.auth import Credential, utcnow
from restpipe.domain.models.http import Headers, ResponseEnvelope
from restpipe.infrastructure.config import settings


# --- Fakes ---

class FakeClock:
    """Monotonic clock plus a sleep that advances it instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []
        self.blocker: Optional[asyncio.Event] = None

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.blocker is not None:
            await self.blocker.wait()
        self.now += seconds
        # Let other tasks run, like a real sleep would
        await asyncio.sleep(0)


class ScriptedTransport(Transport):
    """Replays queued responses (or raises queued exceptions). The last item repeats."""

    def __init__(self, *items):
        self.items = list(items)
        self.requests = []
        self.connected = []
        self.closed = False

    async def execute(self, request):
        self.requests.append(request)
        await asyncio.sleep(0)
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, BaseException):
            raise item
        return replace(item, request=request)

    async def connect(self, url, listener, headers=None):
        self.connected.append((url, dict(headers or {})))
        connection = MagicMock(spec=StreamConnection)
        connection.url = url
        return connection

    async def aclose(self):
        self.closed = True


class FakeExchange(AuthorizationExchange):
    """Issues 'access-N' tokens without a refresh token, like most token endpoints."""

    def __init__(self, lifetime: timedelta = timedelta(hours=1)):
        self.lifetime = lifetime
        self.calls = 0
        self.fail_with: Optional[Exception] = None
        self.revoked = []
        self.revoke_error: Optional[Exception] = None
        self.closed = False

    async def refresh(self, credential):
        self.calls += 1
        # Yield so concurrent callers pile up on the renewal lock
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        return Credential(f"access-{self.calls}", utcnow() + self.lifetime, credential.scopes)

    async def revoke(self, token, token_type_hint):
        self.revoked.append((token, token_type_hint))
        if self.revoke_error is not None:
            raise self.revoke_error

    async def aclose(self):
        self.closed = True


def make_response(status_code: int = 200, body: str = "{}", content_type: Optional[str] = "application/json") -> ResponseEnvelope:
    headers = Headers({"Content-Type": content_type}) if content_type else Headers()
    return ResponseEnvelope(status_code=status_code, headers=headers, body=body)


def make_credential(
    access_token: str = "initial-access",
    expires_in: timedelta = timedelta(hours=1),
    refresh_token: Optional[str] = "refresh-token",
    scopes=("*",),
) -> Credential:
    return Credential(access_token, utcnow() + expires_in, frozenset(scopes), refresh_token)


# --- Fixtures ---

@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()

@pytest.fixture
def fake_clock():
    return FakeClock()

@pytest.fixture
def exchange():
    return FakeExchange()

@pytest.fixture
def response_factory():
    return make_response

@pytest.fixture
def credential_factory():
    return make_credential

@pytest.fixture
def transport_factory():
    return ScriptedTransport

@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keeps tests independent of the developer's config file and each other."""
    monkeypatch.setattr(settings, "_config", {})
    monkeypatch.setattr(settings, "_loaded", True)
    settings.clear_test_config()
    yield
    settings.clear_test_config()

@pytest.fixture
def mock_console_display(mocker):
    """Mocks the ConsoleDisplay to capture output easily.
    Patches the ConsoleDisplay where the composition root builds it.
    """
    from restpipe.infrastructure.cli.display import ConsoleDisplay
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mocker.patch('restpipe.main.ConsoleDisplay', return_value=mock)
    return mock

@pytest.fixture
def cli_environment(mocker, monkeypatch, tmp_path):
    """Wires the real composition root to scripted network fakes.

    Returns the transport and exchange the CLI will use.
    """
    import restpipe.main
    monkeypatch.setattr(restpipe.main, "_dependencies", None)
    mocker.patch('restpipe.main.setup_logging')

    transport = ScriptedTransport(make_response(200, '{"name": "alice"}'))
    exchange = FakeExchange()
    mocker.patch('restpipe.main.HttpxTransport', return_value=transport)
    mocker.patch('restpipe.main.HttpxAuthorizationExchange', return_value=exchange)
    settings.set_config_for_testing({
        "api.base_url": "https://oauth.example.com",
        "auth.client_id": "client-id",
        "auth.access_token": None,
        "auth.refresh_token": "configured-refresh",
        "tokens.dir": str(tmp_path / "tokens"),
    })
    return transport, exchange
