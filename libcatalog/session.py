"""Session state and admin resolution.

``SessionResolver`` is the single writer of the process-wide session
snapshot. Consumers read ``snapshot`` or ``subscribe`` to changes; they
never mutate it.

Every resolution attempt and every sign-out bumps a generation counter.
A resolution that completes after its generation has been superseded is
discarded, so a sign-out issued while a sign-in is still in flight
cannot be overwritten by the stale sign-in result. If the provider call of
such a sign-in only returns after the sign-out, the tokens it stored are
dropped again so the provider agrees with the published snapshot.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

GROUPS_CLAIM = "cognito:groups"
ADMIN_GROUP = "Admin"


class SessionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    email: str
    display_name: str
    role: str = "user"
    created_at: str = ""


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of who is signed in and with what privileges."""
    state: SessionState = SessionState.UNRESOLVED
    user: Optional[UserIdentity] = None
    is_loading: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.role == "admin"


Listener = Callable[[SessionSnapshot], None]


def decode_jwt_payload(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode the payload segment of a JWT without verifying it.

    Args:
        token: Encoded token

    Returns:
        Claims dict, or None if the token cannot be decoded
    """
    try:
        segment = token.split(".")[1]
        segment = segment.replace("-", "+").replace("_", "/")
        segment += "=" * (-len(segment) % 4)
        payload = json.loads(base64.b64decode(segment, validate=True).decode("utf-8"))
    except (AttributeError, IndexError, binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def groups_from_claims(claims: Optional[Dict[str, Any]]) -> List[str]:
    groups = (claims or {}).get(GROUPS_CLAIM) or []
    if not isinstance(groups, list):
        return []
    return [g for g in groups if isinstance(g, str)]


class SessionResolver:
    """Owns the session snapshot and derives the admin flag from the
    identity provider's access token."""

    def __init__(self, provider):
        """
        Args:
            provider: Identity provider (see libcatalog.identity)
        """
        self.provider = provider
        # App start resolves immediately, so the first snapshot is loading
        self._snapshot = SessionSnapshot(state=SessionState.UNRESOLVED, is_loading=True)
        self._listeners: List[Listener] = []
        self._generation = 0
        self._sign_out_generation = 0

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: SessionSnapshot):
        self._snapshot = snapshot
        logger.info(
            f"Session {snapshot.state.value} "
            f"(loading={snapshot.is_loading}, admin={snapshot.is_admin})"
        )
        for listener in list(self._listeners):
            listener(snapshot)

    def _begin(self) -> int:
        self._generation += 1
        self._publish(replace(self._snapshot, state=SessionState.RESOLVING, is_loading=True))
        return self._generation

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(f"Discarding stale resolution {generation} (current {self._generation})")
            return False
        return True

    def _superseded_by_sign_out(self, generation: int) -> bool:
        """Whether the latest operation is a sign-out issued after ``generation`` began."""
        return self._generation == self._sign_out_generation > generation

    async def resolve_is_admin(self) -> bool:
        """Whether the current access token carries the admin group claim.

        Never raises; any failure means "not admin".
        """
        try:
            credential = await self.provider.get_session_credential()
            access_token = getattr(credential, "access_token", None)
            if not access_token:
                return False
            return ADMIN_GROUP in groups_from_claims(decode_jwt_payload(access_token))
        except Exception as e:
            logger.warning(f"Admin resolution failed: {e}")
            return False

    async def _resolve_identity(self, fallback_email: str = "") -> UserIdentity:
        principal = await self.provider.get_current_principal()
        attributes = await self.provider.get_principal_attributes()

        # Role must be known before the identity is built
        admin = await self.resolve_is_admin()

        return UserIdentity(
            user_id=principal.user_id,
            email=attributes.get("email") or fallback_email,
            display_name=attributes.get("name") or principal.username,
            role="admin" if admin else "user",
            created_at=datetime.now(timezone.utc).isoformat()
        )

    async def _resolve(self, generation: int, fallback_email: str = "") -> bool:
        try:
            user = await self._resolve_identity(fallback_email)
        except Exception as e:
            logger.warning(f"Session resolution failed, continuing anonymously: {e}")
            if self._is_current(generation):
                self._publish(SessionSnapshot(state=SessionState.ANONYMOUS))
            return False

        if not self._is_current(generation):
            return False
        self._publish(SessionSnapshot(state=SessionState.AUTHENTICATED, user=user))
        return True

    async def start(self) -> SessionSnapshot:
        """Resolve an existing session at application start. Never raises."""
        generation = self._begin()
        await self._resolve(generation)
        return self._snapshot

    async def sign_in(self, email: str, password: str) -> bool:
        """
        Sign in and publish the resulting identity.

        Provider errors propagate so the caller can correct credentials.

        Returns:
            True when an authenticated snapshot was published
        """
        generation = self._begin()
        try:
            signed_in = await self.provider.sign_in(email, password)
        except Exception:
            logger.error("Login error")
            if self._is_current(generation):
                self._publish(SessionSnapshot(state=SessionState.ANONYMOUS))
            raise

        if signed_in and self._superseded_by_sign_out(generation):
            # The provider stored tokens after the user already signed out
            logger.info("Dropping provider session from a sign-in that finished after sign-out")
            await self.provider.sign_out()
            return False

        if not signed_in:
            if self._is_current(generation):
                self._publish(SessionSnapshot(state=SessionState.ANONYMOUS))
            return False

        return await self._resolve(generation, fallback_email=email)

    async def sign_out(self):
        """Sign out and reset to an unauthenticated snapshot."""
        previous = self._snapshot
        self._generation += 1
        self._sign_out_generation = self._generation
        self._publish(replace(previous, is_loading=True))
        try:
            await self.provider.sign_out()
        except Exception:
            logger.error("Logout error")
            if previous.is_loading or previous.state is SessionState.RESOLVING:
                # The pending resolution was superseded and will never publish
                self._publish(SessionSnapshot(state=SessionState.ANONYMOUS))
            else:
                self._publish(previous)
            raise
        self._publish(SessionSnapshot(state=SessionState.UNRESOLVED))

    async def sign_up(self, email: str, password: str, name: str):
        """Register a new account; confirmation happens out of band."""
        try:
            await self.provider.sign_up(email, password, name)
        except Exception:
            logger.error("Signup error")
            raise
        logger.info("Signup successful, awaiting confirmation code")

    async def confirm_sign_up(self, identifier: str, code: str):
        await self.provider.confirm_sign_up(identifier, code)

    def close(self):
        """Tear down: drop every listener."""
        self._listeners.clear()
