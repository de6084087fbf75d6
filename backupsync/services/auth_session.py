"""Authentication session manager.

Owns the single authenticated session of the UI side: login, account
creation, logout, startup restoration from the protected store, password
recovery, and bridging the session to the file-access side.

The cache is only ever flipped to authenticated after the remote session
and the user profile were both obtained; any failure on the way leaves it
unauthenticated. Every public coroutine returns an ``AuthResult`` instead
of raising.

Example:
    auth = AuthSessionManager(backend, bridge=bridge, store=KeyringStore())
    result = await auth.login("owner@example.com", "correct-horse")
    if not result.success:
        print(result.reason, result.error)
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable
from uuid import uuid4

import keyring.errors

from backupsync.errors import (
    AuthenticationError,
    AuthFailure,
    DomainError,
    TransientError,
    ValidationError,
)
from backupsync.services.backend_types import (
    IdentityService,
    UserProfile,
    parse_timestamp,
    utcnow,
)
from backupsync.services.bridge import PrivilegedBridge, SharedSession
from backupsync.services.keyring_store import SESSION_KEY, KeyringStore
from backupsync.services.results import AuthResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_RENEWAL_MARGIN = timedelta(minutes=5)

AuthListener = Callable[[bool], None]

# Transient error codes with a dedicated failure reason
_TRANSIENT_REASONS: dict[str, AuthFailure] = {
    "E-3002": AuthFailure.RATE_LIMITED,
    "E-3003": AuthFailure.TIMEOUT,
}


@dataclass(frozen=True)
class AuthSession:
    """The cached authenticated session.

    Attributes:
        user_id: Owning account identity.
        email: Account email.
        session_id: Remote session identity.
        secret: Session credential attached to backend calls.
        expires_at: Session expiry (UTC).
        bearer_token: Short-lived JWT handed to the file-access side.
        authenticated: True once the profile fetch succeeded.
    """

    user_id: str
    email: str
    session_id: str
    secret: str
    expires_at: datetime
    bearer_token: str | None = None
    authenticated: bool = True

    def to_store(self) -> dict:
        """Serializable form for the protected store."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "session_id": self.session_id,
            "secret": self.secret,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_store(cls, data: dict) -> "AuthSession":
        """Rebuild a stored session; not authenticated until verified.

        Raises:
            KeyError: If a required field is missing.
        """
        return cls(
            user_id=data["user_id"],
            email=data.get("email", ""),
            session_id=data["session_id"],
            secret=data["secret"],
            expires_at=parse_timestamp(data.get("expires_at")),
            authenticated=False,
        )

    def to_shared(self) -> SharedSession:
        """Immutable copy for the file-access side."""
        return SharedSession(
            session_id=self.session_id,
            user_id=self.user_id,
            user_email=self.email,
            session_secret=self.secret,
            jwt=self.bearer_token,
        )


def validate_email(email: str) -> None:
    """Raise ValidationError unless ``email`` looks like local@domain.tld."""
    if not email or not email.strip():
        raise ValidationError.from_code("E-2003", field="email")
    if not EMAIL_PATTERN.match(email.strip()):
        raise ValidationError.from_code("E-2001", value=email)


def validate_password(password: str) -> None:
    """Raise ValidationError unless ``password`` is long enough."""
    if not password:
        raise ValidationError.from_code("E-2003", field="password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError.from_code("E-2002", min_length=MIN_PASSWORD_LENGTH)


def classify_failure(error: DomainError) -> AuthFailure | None:
    """Map a domain error to the authentication failure reason it implies."""
    if isinstance(error, AuthenticationError):
        return error.reason
    if isinstance(error, ValidationError):
        return AuthFailure.VALIDATION_ERROR
    if isinstance(error, TransientError):
        return _TRANSIENT_REASONS.get(error.code, AuthFailure.NETWORK_ERROR)
    return None


class AuthSessionManager:
    """Single owner of the authenticated session."""

    def __init__(
        self,
        identity: IdentityService,
        bridge: PrivilegedBridge | None = None,
        store: KeyringStore | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        renewal_margin: timedelta = DEFAULT_RENEWAL_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the manager.

        Args:
            identity: Identity service used for every account call.
            bridge: File-access side that receives the session copy.
            store: Protected store for session persistence; None keeps
                the session in memory only.
            timeout: Budget in seconds for each authentication round trip.
            renewal_margin: Sessions closer than this to expiry are
                treated as expired on restoration.
            clock: Source of the current UTC time.
        """
        self._identity = identity
        self._bridge = bridge
        self._store = store
        self._timeout = timeout
        self._renewal_margin = renewal_margin
        self._clock = clock
        self._session: AuthSession | None = None
        self._user: UserProfile | None = None
        self._bridged = False
        self._listeners: list[AuthListener] = []

    # ------------------------------------------------------------------
    # Synchronous cache reads
    # ------------------------------------------------------------------

    @property
    def session(self) -> AuthSession | None:
        return self._session

    def is_authenticated(self) -> bool:
        """True when a verified session is cached. Never touches the network."""
        return self._session is not None and self._session.authenticated

    def get_user(self) -> UserProfile | None:
        """Cached profile of the signed-in user."""
        return self._user if self.is_authenticated() else None

    def current_user_id(self) -> str:
        """Return the signed-in user id.

        Raises:
            AuthenticationError: If no verified session is cached.
        """
        if not self.is_authenticated():
            raise AuthenticationError.for_reason(AuthFailure.NOT_AUTHENTICATED)
        return self._session.user_id

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_auth_change(self, listener: AuthListener) -> None:
        """Register a callback receiving the new authenticated flag."""
        self._listeners.append(listener)

    def off_auth_change(self, listener: AuthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, authenticated: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(authenticated)
            except Exception as e:
                logger.error(
                    "Auth listener %s failed: %s",
                    getattr(listener, "__qualname__", type(listener).__name__),
                    e,
                )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password.

        Input is validated before any network call. A prior session is
        discarded best-effort, then session creation and the profile
        fetch run under one timeout budget. Not retried.
        """
        try:
            validate_email(email)
            validate_password(password)
        except ValidationError as e:
            return self._failed(e)

        await self._discard_prior_session()

        try:
            async with asyncio.timeout(self._timeout):
                remote = await self._identity.create_session(email.strip(), password)
                self._identity.use_session(remote.secret)
                user = await self._identity.get_current_user()
        except TimeoutError:
            self._identity.use_session(None)
            return self._failed(TransientError.from_code("E-3003"))
        except DomainError as e:
            self._identity.use_session(None)
            return self._failed(e)

        session = AuthSession(
            user_id=user.user_id,
            email=user.email or email.strip(),
            session_id=remote.session_id,
            secret=remote.secret,
            expires_at=remote.expires_at,
        )
        await self._establish(session, user)
        logger.info("Signed in as user %s", user.user_id)
        return AuthResult.ok(user=user)

    async def create_account(self, email: str, password: str, name: str = "") -> AuthResult:
        """Register a new account, then sign in with it."""
        try:
            validate_email(email)
            validate_password(password)
        except ValidationError as e:
            return self._failed(e)

        try:
            async with asyncio.timeout(self._timeout):
                await self._identity.create_account(uuid4().hex, email.strip(), password, name)
        except TimeoutError:
            return self._failed(TransientError.from_code("E-3003"))
        except DomainError as e:
            return self._failed(e)

        logger.info("Created account for new user")
        return await self.login(email, password)

    async def logout(self) -> AuthResult:
        """Sign out: remote session deleted best-effort, local state cleared."""
        await self._delete_remote_session("logout")
        await self._clear_session()
        logger.info("Signed out")
        return AuthResult.ok()

    async def verify_session(self) -> AuthResult:
        """Restore and verify a session at startup.

        A session within the renewal margin of its expiry is treated as
        expired: local state and the stored copy are cleared. A session
        the backend rejects is cleared the same way. Network failures
        leave the stored copy in place for a later attempt. A verified
        session takes its expiry from the remote session details.
        """
        candidate = self._session or self._load_stored()
        if candidate is None:
            return self._failed(AuthenticationError.for_reason(AuthFailure.NOT_AUTHENTICATED))

        if candidate.expires_at - self._renewal_margin <= self._clock():
            logger.info("Stored session expires at %s; clearing", candidate.expires_at.isoformat())
            await self._clear_session()
            return self._failed(AuthenticationError.for_reason(AuthFailure.SESSION_EXPIRED))

        self._identity.use_session(candidate.secret)
        try:
            async with asyncio.timeout(self._timeout):
                user = await self._identity.get_current_user()
                remote = await self._identity.get_session("current")
        except TimeoutError:
            self._detach_unverified()
            return self._failed(TransientError.from_code("E-3003"))
        except AuthenticationError:
            await self._clear_session()
            return self._failed(AuthenticationError.for_reason(AuthFailure.SESSION_EXPIRED))
        except DomainError as e:
            self._detach_unverified()
            return self._failed(e)

        session = replace(
            candidate,
            user_id=user.user_id,
            email=user.email or candidate.email,
            expires_at=remote.expires_at,
            authenticated=True,
        )
        await self._establish(session, user)
        return AuthResult.ok(user=user)

    async def reset_password(self, email: str, redirect_url: str) -> AuthResult:
        """Request a password recovery email."""
        try:
            validate_email(email)
            async with asyncio.timeout(self._timeout):
                await self._identity.create_recovery(email.strip(), redirect_url)
        except TimeoutError:
            return self._failed(TransientError.from_code("E-3003"))
        except DomainError as e:
            return self._failed(e)
        return AuthResult.ok()

    async def update_password(self, new_password: str, old_password: str) -> AuthResult:
        """Change the signed-in user's password."""
        try:
            self.current_user_id()
            validate_password(new_password)
            async with asyncio.timeout(self._timeout):
                await self._identity.update_password(new_password, old_password)
        except TimeoutError:
            return self._failed(TransientError.from_code("E-3003"))
        except DomainError as e:
            return self._failed(e)
        return AuthResult.ok(user=self._user)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def _establish(self, session: AuthSession, user: UserProfile) -> None:
        """Flip to authenticated, persist, bridge, notify."""
        was_authenticated = self.is_authenticated()
        self._session = session
        self._user = user
        self._persist(session)
        await self._bridge_session()
        if not was_authenticated:
            self._notify(True)

    async def _clear_session(self) -> None:
        """Drop the session everywhere it lives."""
        was_authenticated = self.is_authenticated()
        self._session = None
        self._user = None
        self._identity.use_session(None)
        try:
            if self._store is not None:
                self._store.delete(SESSION_KEY)
        except keyring.errors.KeyringError as e:
            logger.warning("Could not remove stored session from keyring: %s", e)
        finally:
            if self._bridge is not None:
                try:
                    await self._bridge.clear_shared_session()
                except Exception as e:
                    logger.error("Failed to clear bridged session: %s", e)
            self._bridged = False
            if was_authenticated:
                self._notify(False)

    def _detach_unverified(self) -> None:
        if not self.is_authenticated():
            self._identity.use_session(None)

    async def _delete_remote_session(self, context: str) -> None:
        """Delete the current remote session, best-effort and time-boxed."""
        try:
            async with asyncio.timeout(self._timeout):
                await self._identity.delete_session("current")
        except TimeoutError:
            logger.debug("Remote session delete timed out during %s", context)
        except DomainError as e:
            logger.debug("Remote session delete failed during %s: %s", context, e.message)

    async def _discard_prior_session(self) -> None:
        await self._delete_remote_session("login")
        if self._session is not None:
            await self._clear_session()

    async def _bridge_session(self) -> None:
        """Push the session to the file-access side once per lifetime."""
        if self._bridge is None or self._bridged or self._session is None:
            return
        try:
            async with asyncio.timeout(self._timeout):
                token = await self._identity.create_jwt()
            self._session = replace(self._session, bearer_token=token)
        except TimeoutError:
            logger.debug("Bearer token request timed out, bridging without it")
        except DomainError as e:
            logger.debug("Bearer token unavailable, bridging without it: %s", e.message)
        try:
            await self._bridge.set_shared_session(self._session.to_shared())
        except Exception as e:
            logger.error("Failed to bridge session to file-access side: %s", e)
            return
        self._bridged = True

    def _persist(self, session: AuthSession) -> None:
        if self._store is None:
            return
        try:
            self._store.save_json(SESSION_KEY, session.to_store())
        except keyring.errors.KeyringError as e:
            logger.warning("Could not persist session to keyring: %s", e)

    def _load_stored(self) -> AuthSession | None:
        if self._store is None:
            return None
        data = self._store.load_json(SESSION_KEY)
        if data is None:
            return None
        try:
            return AuthSession.from_store(data)
        except (KeyError, ValueError) as e:
            logger.warning("Discarding malformed stored session: %s", e)
            try:
                self._store.delete(SESSION_KEY)
            except keyring.errors.KeyringError as err:
                logger.warning("Could not remove stored session from keyring: %s", err)
            return None

    def _failed(self, error: DomainError) -> AuthResult:
        result = AuthResult.from_error(error)
        if result.reason is None:
            reason = classify_failure(error)
            result.reason = reason.value if reason else None
        logger.warning("Authentication operation failed (%s): %s", result.reason, error.message)
        return result
