"""Tests for the Cognito identity provider client."""
import asyncio
import json

import httpx
import pytest

from libcatalog.identity import AuthError, CognitoIdentityProvider, NoActiveSessionError

ENDPOINT = "https://cognito-idp.us-east-1.amazonaws.com/"


def make_provider(handler):
    requests_seen = []

    def recording_handler(request):
        body = json.loads(request.content or b"{}")
        action = request.headers["X-Amz-Target"].split(".")[-1]
        requests_seen.append((action, body))
        return handler(action, body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
    return CognitoIdentityProvider("client-123", ENDPOINT, client=client), requests_seen


def cognito_handler(action, body):
    if action == "InitiateAuth":
        if body["AuthParameters"]["PASSWORD"] != "Password1":
            return httpx.Response(400, json={
                "__type": "NotAuthorizedException",
                "message": "Incorrect username or password.",
            })
        return httpx.Response(200, json={"AuthenticationResult": {
            "AccessToken": "access", "IdToken": "id", "ExpiresIn": 3600,
        }})
    if action == "GetUser":
        return httpx.Response(200, json={
            "Username": "reader",
            "UserAttributes": [
                {"Name": "sub", "Value": "u-1"},
                {"Name": "email", "Value": "reader@example.com"},
                {"Name": "name", "Value": "Reader"},
            ],
        })
    if action in ("GlobalSignOut", "SignUp", "ConfirmSignUp"):
        return httpx.Response(200, json={})
    return httpx.Response(400, json={"__type": "InvalidAction"})


def test_sign_in_and_fetch_identity():
    """Test the password sign-in flow and principal lookup."""
    provider, seen = make_provider(cognito_handler)

    async def scenario():
        async with provider:
            assert await provider.sign_in("reader@example.com", "Password1") is True
            principal = await provider.get_current_principal()
            attributes = await provider.get_principal_attributes()
            credential = await provider.get_session_credential()
            return principal, attributes, credential

    principal, attributes, credential = asyncio.run(scenario())

    assert principal.user_id == "u-1"
    assert principal.username == "reader"
    assert attributes["email"] == "reader@example.com"
    assert credential.access_token == "access"
    assert provider.id_token == "id"
    assert seen[0][0] == "InitiateAuth"
    assert seen[0][1]["ClientId"] == "client-123"
    assert seen[1] == ("GetUser", {"AccessToken": "access"})


def test_wrong_password_raises():
    """Test that rejected credentials surface as AuthError."""
    provider, _ = make_provider(cognito_handler)

    with pytest.raises(AuthError) as excinfo:
        asyncio.run(provider.sign_in("reader@example.com", "nope"))

    assert excinfo.value.error_type == "NotAuthorizedException"
    assert not isinstance(excinfo.value, NoActiveSessionError)


def test_no_session():
    """Test lookups without a signed-in user."""
    provider, seen = make_provider(cognito_handler)

    with pytest.raises(NoActiveSessionError):
        asyncio.run(provider.get_current_principal())

    assert asyncio.run(provider.get_session_credential()) is None
    assert provider.id_token is None
    assert seen == []


def test_sign_out_forgets_tokens():
    """Test that sign-out revokes and drops the session."""
    provider, seen = make_provider(cognito_handler)

    async def scenario():
        await provider.sign_in("reader@example.com", "Password1")
        await provider.sign_out()
        return await provider.get_session_credential()

    assert asyncio.run(scenario()) is None
    assert [action for action, _ in seen] == ["InitiateAuth", "GlobalSignOut"]


def test_sign_up_sends_attributes():
    """Test the sign-up payload."""
    provider, seen = make_provider(cognito_handler)

    asyncio.run(provider.sign_up("new@example.com", "Password1", "New Reader"))

    action, body = seen[0]
    assert action == "SignUp"
    assert body["Username"] == "new@example.com"
    assert {"Name": "name", "Value": "New Reader"} in body["UserAttributes"]


def test_transport_error_raises_auth_error():
    """Test that network failures become AuthError."""
    def failing(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(failing))
    provider = CognitoIdentityProvider("client-123", ENDPOINT, client=client)

    with pytest.raises(AuthError):
        asyncio.run(provider.confirm_sign_up("new@example.com", "123456"))
