import pytest
from unittest.mock import AsyncMock, MagicMock

from restpipe.core.client import ApiClient
from restpipe.core.command_handler import CommandHandler
from restpipe.domain.errors import ApiError, NoAuthenticatedUserError, RenewalError
from restpipe.domain.interfaces.user_interface import UserInterface
from restpipe.domain.models.http import RequestBuilder, ResponseEnvelope


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)

@pytest.fixture
def mock_client():
    client = MagicMock(spec=ApiClient)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.request = AsyncMock(return_value=ResponseEnvelope(200, {}, "{}"))
    client.logout = AsyncMock()
    client.username = "alice"
    return client

@pytest.fixture
def command_handler(mock_client, mock_ui):
    """Fixture to create CommandHandler with a mocked client factory."""
    return CommandHandler(client_factory=AsyncMock(return_value=mock_client), ui=mock_ui)


@pytest.mark.asyncio
async def test_handle_request_displays_response(command_handler, mock_client, mock_ui):
    ok = await command_handler.handle_request("get", "/api/v1/me", query={"limit": "5"}, raw_json=False)

    assert ok
    mock_client.request.assert_awaited_once()
    configure = mock_client.request.await_args.args[0]
    built = configure(RequestBuilder().host("oauth.example.com")).build()
    assert built.method == "GET"
    assert built.url == "https://oauth.example.com/api/v1/me?limit=5"
    assert built.raw_json is False
    mock_ui.display_response.assert_called_once_with(mock_client.request.return_value, show_headers=False)
    mock_client.__aexit__.assert_awaited_once()


@pytest.mark.asyncio
async def test_handle_request_sends_form(command_handler, mock_client):
    await command_handler.handle_request("POST", "/api/comment", form={"text": "hi"})

    configure = mock_client.request.await_args.args[0]
    built = configure(RequestBuilder().host("oauth.example.com")).build()
    assert built.method == "POST"
    assert dict(built.body) == {"text": "hi"}


@pytest.mark.asyncio
async def test_handle_request_rejects_unknown_method(command_handler, mock_client, mock_ui):
    ok = await command_handler.handle_request("TRACE", "/")

    assert not ok
    mock_client.request.assert_not_called()
    mock_ui.display_error.assert_called_once()


@pytest.mark.asyncio
async def test_handle_request_rejects_form_with_get(command_handler, mock_ui):
    assert not await command_handler.handle_request("GET", "/", form={"a": "b"})
    mock_ui.display_error.assert_called_once_with("Form fields cannot be sent with GET.")


@pytest.mark.asyncio
async def test_handle_request_error(command_handler, mock_client, mock_ui):
    mock_client.request.side_effect = ApiError("SUBREDDIT_NOEXIST", "that subreddit doesn't exist", "sr")

    ok = await command_handler.handle_request("GET", "/r/nope/about")

    assert not ok
    mock_ui.display_error.assert_called_once_with(
        "Request failed: API returned error: SUBREDDIT_NOEXIST: that subreddit doesn't exist (field: sr)"
    )
    mock_client.__aexit__.assert_awaited_once()


@pytest.mark.asyncio
async def test_handle_whoami(command_handler, mock_client, mock_ui):
    mock_client.require_authenticated_user.return_value = "alice"

    assert await command_handler.handle_whoami()
    mock_ui.display_info.assert_called_once_with("Authenticated as alice")


@pytest.mark.asyncio
async def test_handle_whoami_without_user(command_handler, mock_client, mock_ui):
    mock_client.require_authenticated_user.side_effect = NoAuthenticatedUserError("This operation requires a logged-in user")

    assert not await command_handler.handle_whoami()
    mock_ui.display_error.assert_called_once_with("Could not determine user: This operation requires a logged-in user")


@pytest.mark.asyncio
async def test_handle_token_info(command_handler, mock_client, mock_ui, credential_factory):
    credential = credential_factory()
    mock_client.token_manager = MagicMock()
    mock_client.token_manager.current.return_value = credential

    assert await command_handler.handle_token_info()
    mock_ui.display_credential.assert_called_once_with(credential, username="alice")


@pytest.mark.asyncio
async def test_handle_logout(command_handler, mock_client, mock_ui):
    assert await command_handler.handle_logout()

    mock_client.logout.assert_awaited_once()
    mock_ui.display_info.assert_called_once()


@pytest.mark.asyncio
async def test_handle_logout_error(command_handler, mock_client, mock_ui):
    mock_client.logout.side_effect = RenewalError("Token revocation failed with HTTP 500")

    assert not await command_handler.handle_logout()
    mock_ui.display_error.assert_called_once_with("Logout failed: Token revocation failed with HTTP 500")


@pytest.mark.asyncio
async def test_client_factory_failure_is_displayed(mock_ui):
    handler = CommandHandler(client_factory=AsyncMock(side_effect=RenewalError("invalid_grant")), ui=mock_ui)

    assert not await handler.handle_whoami()
    mock_ui.display_error.assert_called_once_with("Could not determine user: invalid_grant")
