"""Async client for the Cognito user-pool identity provider."""
import time
import httpx
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

TARGET_PREFIX = "AWSCognitoIdentityProviderService"


class AuthError(Exception):
    """The identity provider rejected a request."""

    def __init__(self, message: str, error_type: str = ""):
        super().__init__(message)
        self.error_type = error_type


class NoActiveSessionError(AuthError):
    """There is no signed-in user, or the session has expired."""


@dataclass(frozen=True)
class Principal:
    user_id: str
    username: str


@dataclass(frozen=True)
class SessionCredential:
    access_token: str
    id_token: str
    expires_at: float

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at


class CognitoIdentityProvider:
    """Identity provider backed by the Cognito user-pool JSON API.

    Tokens are kept in memory for the lifetime of the object.
    """

    def __init__(
        self,
        client_id: str,
        endpoint: str,
        timeout: int = 10,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the identity provider.

        Args:
            client_id: User-pool app client id
            endpoint: Regional Cognito endpoint
            timeout: Request timeout
            client: Optional preconfigured httpx.AsyncClient
        """
        self.client_id = client_id
        self.endpoint = endpoint
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._credential: Optional[SessionCredential] = None

    async def _call(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Invoke one Cognito action.

        Args:
            action: Action name, e.g. InitiateAuth
            payload: Request body

        Returns:
            Decoded response body
        """
        headers = {
            "Content-Type": "application/x-amz-json-1.1",
            "X-Amz-Target": f"{TARGET_PREFIX}.{action}",
        }
        logger.info(f"Identity request: {action}")

        try:
            response = await self.client.post(self.endpoint, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Identity request failed: {action}: {e}")
            raise AuthError(f"{action} failed: {e}")

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code != 200:
            error_type = str(data.get("__type", "")).split("#")[-1]
            message = data.get("message") or data.get("Message") or f"status {response.status_code}"
            logger.warning(f"Identity error ({response.status_code}) on {action}: {error_type}")
            if error_type == "NotAuthorizedException" and action != "InitiateAuth":
                raise NoActiveSessionError(message, error_type)
            raise AuthError(message, error_type)

        return data

    @property
    def id_token(self) -> Optional[str]:
        """Current id token for backend calls, if a session is active."""
        if self._credential is None or self._credential.expired:
            return None
        return self._credential.id_token

    def _require_access_token(self) -> str:
        if self._credential is None:
            raise NoActiveSessionError("No signed-in user")
        if self._credential.expired:
            raise NoActiveSessionError("Session expired")
        return self._credential.access_token

    async def sign_in(self, email: str, password: str) -> bool:
        """
        Sign in with username and password.

        Returns:
            True when the sign-in completed, False when the provider asked
            for an extra challenge step
        """
        data = await self._call("InitiateAuth", {
            "AuthFlow": "USER_PASSWORD_AUTH",
            "ClientId": self.client_id,
            "AuthParameters": {"USERNAME": email, "PASSWORD": password},
        })

        result = data.get("AuthenticationResult")
        if not result:
            logger.warning(f"Sign-in needs challenge: {data.get('ChallengeName')}")
            return False

        self._credential = SessionCredential(
            access_token=result["AccessToken"],
            id_token=result.get("IdToken", ""),
            expires_at=time.time() + int(result.get("ExpiresIn", 3600))
        )
        return True

    async def sign_out(self):
        """Revoke the session's tokens and forget them locally."""
        if self._credential is not None and not self._credential.expired:
            await self._call("GlobalSignOut", {"AccessToken": self._credential.access_token})
        self._credential = None

    async def sign_up(self, email: str, password: str, name: str) -> Dict[str, Any]:
        return await self._call("SignUp", {
            "ClientId": self.client_id,
            "Username": email,
            "Password": password,
            "UserAttributes": [
                {"Name": "email", "Value": email},
                {"Name": "name", "Value": name},
            ],
        })

    async def confirm_sign_up(self, identifier: str, code: str):
        await self._call("ConfirmSignUp", {
            "ClientId": self.client_id,
            "Username": identifier,
            "ConfirmationCode": code,
        })

    async def _get_user(self) -> Dict[str, Any]:
        return await self._call("GetUser", {"AccessToken": self._require_access_token()})

    async def get_current_principal(self) -> Principal:
        user = await self._get_user()
        attributes = _attribute_map(user)
        username = user.get("Username", "")
        return Principal(user_id=attributes.get("sub", username), username=username)

    async def get_principal_attributes(self) -> Dict[str, str]:
        return _attribute_map(await self._get_user())

    async def get_session_credential(self) -> Optional[SessionCredential]:
        if self._credential is None or self._credential.expired:
            return None
        return self._credential

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


def _attribute_map(user: Dict[str, Any]) -> Dict[str, str]:
    return {
        a["Name"]: a.get("Value", "")
        for a in user.get("UserAttributes") or []
        if isinstance(a, dict) and "Name" in a
    }
