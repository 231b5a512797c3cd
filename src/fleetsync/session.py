"""Dashboard login sessions persisted in two storage tiers.

A session is one JSON blob stored under a fixed key. "Remember me"
sessions go to the durable tier and expire after 24 hours; all others go
to the tab-scoped tier and expire after 8 hours. Both windows are
measured from ``loginTime``, which :meth:`SessionGate.refresh` moves
forward.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import secrets
import tempfile
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Annotated, Any, Protocol

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_serializer
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from fleetsync._constants import DURABLE_SESSION_TTL_S, SESSION_STORAGE_KEY, TAB_SESSION_TTL_S
from fleetsync.config import FleetConfig
from fleetsync.exceptions import AuthError, SessionExpiredError
from fleetsync.models._base import iso_timestamp, parse_timestamp

_logger = logging.getLogger(__name__)

LOCAL_PROVIDER = "local"

_HASH_SCHEME = "pbkdf2_sha256"
_DEFAULT_ITERATIONS = 600_000


def _utcnow() -> datetime:
    return datetime.now(UTC)


LoginTime = Annotated[datetime, BeforeValidator(parse_timestamp)]


class Session(BaseModel):
    """Authenticated dashboard identity.

    Parameters
    ----------
    login_time : datetime
        When the session was created or last refreshed (UTC).
    remember_me : bool
        ``True`` for the durable tier, ``False`` for the tab-scoped tier.
    provider : str
        ``"local"`` for username/password, otherwise the identity
        provider id (e.g. ``"google.com"``).
    is_federated : bool
        Whether logout must also sign out of the identity provider.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    username: str | None = None
    display_name: str | None = None
    email: str | None = None
    photo_url: str | None = Field(default=None, alias="photoURL")
    uid: str | None = None
    login_time: LoginTime
    remember_me: bool = False
    provider: str = LOCAL_PROVIDER
    is_federated: bool = False

    @field_serializer("login_time")
    def _serialize_login_time(self, value: datetime) -> str:
        return iso_timestamp(value)

    def to_blob(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ------------------------------------------------------------------
# Storage tiers
# ------------------------------------------------------------------


class SessionStorage(Protocol):
    """Key/value string storage, shaped like browser web storage."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemorySessionStorage:
    """Process-lifetime storage; the tab-scoped tier."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileSessionStorage:
    """JSON-file storage that survives restarts; the durable tier."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Ignoring unreadable session file %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".session-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


# ------------------------------------------------------------------
# Credentials and identity provider
# ------------------------------------------------------------------


class CredentialVerifier(Protocol):
    """Checks a local username/password pair."""

    def verify(self, username: str, password: str) -> bool:
        ...


class IdentityProvider(Protocol):
    """Federated identity SDK; only sign-out is needed here."""

    async def sign_out(self) -> None:
        ...


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)


def hash_password(password: str, *, salt: bytes | None = None, iterations: int = _DEFAULT_ITERATIONS) -> str:
    """Encode *password* as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``."""
    salt = salt if salt is not None else secrets.token_bytes(16)
    digest = _kdf(salt, iterations).derive(password.encode("utf-8"))
    return "$".join(
        (
            _HASH_SCHEME,
            str(iterations),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        )
    )


class Pbkdf2CredentialVerifier:
    """Verifies passwords against PBKDF2-HMAC-SHA256 hashes.

    *users* maps usernames to strings produced by :func:`hash_password`.
    """

    def __init__(self, users: Mapping[str, str]) -> None:
        self._users = dict(users)

    @classmethod
    def from_passwords(cls, passwords: Mapping[str, str], *, iterations: int = _DEFAULT_ITERATIONS) -> Pbkdf2CredentialVerifier:
        return cls({name: hash_password(pw, iterations=iterations) for name, pw in passwords.items()})

    def verify(self, username: str, password: str) -> bool:
        encoded = self._users.get(username)
        if encoded is None:
            return False
        try:
            scheme, iterations, salt_b64, hash_b64 = encoded.split("$")
            if scheme != _HASH_SCHEME:
                raise ValueError(scheme)
            salt = base64.b64decode(salt_b64)
            expected = base64.b64decode(hash_b64)
            kdf = _kdf(salt, int(iterations))
        except ValueError:
            _logger.warning("Stored hash for %s is not a %s hash", username, _HASH_SCHEME)
            return False
        try:
            kdf.verify(password.encode("utf-8"), expected)
        except InvalidKey:
            return False
        return True


# ------------------------------------------------------------------
# Gate
# ------------------------------------------------------------------


def _result_field(result: Any, *names: str) -> Any:
    for name in names:
        value = result.get(name) if isinstance(result, Mapping) else getattr(result, name, None)
        if value not in (None, ""):
            return value
    return None


class SessionGate:
    """Login state machine: anonymous, authenticated (local or federated)."""

    def __init__(
        self,
        verifier: CredentialVerifier | None,
        durable: SessionStorage,
        tab: SessionStorage,
        *,
        identity_provider: IdentityProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
        durable_ttl: float = DURABLE_SESSION_TTL_S,
        tab_ttl: float = TAB_SESSION_TTL_S,
        storage_key: str = SESSION_STORAGE_KEY,
    ) -> None:
        self._verifier = verifier
        self._durable = durable
        self._tab = tab
        self._identity_provider = identity_provider
        self._clock = clock
        self._durable_ttl = timedelta(seconds=durable_ttl)
        self._tab_ttl = timedelta(seconds=tab_ttl)
        self._key = storage_key
        self._current: Session | None = None

    @classmethod
    def from_config(
        cls,
        config: FleetConfig,
        verifier: CredentialVerifier | None,
        *,
        identity_provider: IdentityProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> SessionGate:
        """Gate with the durable tier in ``config.session_file`` (memory if unset)."""
        durable: SessionStorage = (
            FileSessionStorage(config.session_file) if config.session_file else MemorySessionStorage()
        )
        return cls(
            verifier,
            durable,
            MemorySessionStorage(),
            identity_provider=identity_provider,
            clock=clock,
            durable_ttl=config.durable_session_ttl,
            tab_ttl=config.tab_session_ttl,
        )

    @property
    def current(self) -> Session | None:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    def _ttl(self, session: Session) -> timedelta:
        return self._durable_ttl if session.remember_me else self._tab_ttl

    def is_expired(self, session: Session, *, ttl: timedelta | None = None) -> bool:
        return self._clock() - session.login_time > (ttl if ttl is not None else self._ttl(session))

    def _persist(self, session: Session) -> None:
        blob = session.to_blob()
        if session.remember_me:
            self._durable.set(self._key, blob)
            self._tab.remove(self._key)
        else:
            self._tab.set(self._key, blob)
            self._durable.remove(self._key)
        self._current = session

    def _clear(self) -> None:
        self._durable.remove(self._key)
        self._tab.remove(self._key)
        self._current = None

    def login_local(self, username: str, password: str, *, remember_me: bool = False) -> Session:
        """Check credentials with the configured verifier and start a session."""
        if self._verifier is None:
            raise AuthError("Local login is not configured")
        if not self._verifier.verify(username, password):
            _logger.info("Rejected local login for %s", username)
            raise AuthError("Invalid username or password")
        session = Session(
            username=username,
            display_name=username,
            login_time=self._clock(),
            remember_me=remember_me,
            provider=LOCAL_PROVIDER,
        )
        self._persist(session)
        _logger.info("Local login for %s (remember_me=%s)", username, remember_me)
        return session

    def login_federated(self, provider_result: Any, *, remember_me: bool = True) -> Session:
        """Wrap a completed identity-provider sign-in into a session.

        *provider_result* is the provider's user object or a mapping with
        ``uid``, ``displayName``, ``email``, ``photoURL`` and ``providerId``.
        """
        uid = _result_field(provider_result, "uid")
        if uid is None:
            raise AuthError("Identity provider result has no uid")
        email = _result_field(provider_result, "email")
        display_name = _result_field(provider_result, "displayName", "display_name")
        session = Session(
            uid=str(uid),
            username=email or display_name,
            display_name=display_name,
            email=email,
            photo_url=_result_field(provider_result, "photoURL", "photo_url"),
            login_time=self._clock(),
            remember_me=remember_me,
            provider=_result_field(provider_result, "providerId", "provider_id") or "google.com",
            is_federated=True,
        )
        self._persist(session)
        _logger.info("Federated login for %s via %s", session.username, session.provider)
        return session

    def restore_on_load(self) -> Session | None:
        """Resume a stored session, durable tier first; ``None`` when anonymous."""
        for tier, storage, ttl in (
            ("durable", self._durable, self._durable_ttl),
            ("tab", self._tab, self._tab_ttl),
        ):
            raw = storage.get(self._key)
            if raw is None:
                continue
            try:
                session = Session.model_validate_json(raw)
            except PydanticValidationError:
                _logger.warning("Discarding unreadable %s session", tier)
                storage.remove(self._key)
                continue
            # The tier a blob was found in decides its expiry policy.
            session = session.model_copy(update={"remember_me": storage is self._durable})
            if self.is_expired(session, ttl=ttl):
                _logger.info("Discarding expired %s session for %s", tier, session.username)
                storage.remove(self._key)
                continue
            self._current = session
            return session
        self._current = None
        return None

    def is_session_valid(self) -> bool:
        return self._current is not None and not self.is_expired(self._current)

    def refresh(self) -> Session:
        """Move ``loginTime`` to now, keeping the identity and tier."""
        session = self._current
        if session is None:
            raise AuthError("No active session")
        if self.is_expired(session):
            self._clear()
            raise SessionExpiredError(f"Session for {session.username} has expired")
        refreshed = session.model_copy(update={"login_time": self._clock()})
        self._persist(refreshed)
        return refreshed

    def _stored_session(self) -> Session | None:
        for storage in (self._durable, self._tab):
            raw = storage.get(self._key)
            if raw is None:
                continue
            try:
                return Session.model_validate_json(raw)
            except PydanticValidationError:
                continue
        return None

    async def logout(self) -> None:
        """Clear both tiers, then sign out of the identity provider if federated."""
        session = self._current or self._stored_session()
        self._clear()
        if session is None or not session.is_federated or self._identity_provider is None:
            return
        try:
            await self._identity_provider.sign_out()
        except Exception as exc:
            raise AuthError(f"Identity provider sign-out failed: {exc}") from exc
