from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from fleetsync.config import FleetConfig
from fleetsync.exceptions import AuthError, SessionExpiredError
from fleetsync.session import (
    FileSessionStorage,
    MemorySessionStorage,
    Pbkdf2CredentialVerifier,
    Session,
    SessionGate,
    hash_password,
)

NOW = datetime(2026, 5, 10, 12, 0, tzinfo=UTC)


class _Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> datetime:
        return self.now


class _Provider:
    def __init__(self) -> None:
        self.signed_out = 0

    async def sign_out(self) -> None:
        self.signed_out += 1


def _verifier() -> Pbkdf2CredentialVerifier:
    return Pbkdf2CredentialVerifier.from_passwords({"dispatch": "correct horse"}, iterations=1000)


def _gate(
    durable: MemorySessionStorage | FileSessionStorage | None = None,
    tab: MemorySessionStorage | None = None,
    **kwargs: object,
) -> tuple[SessionGate, MemorySessionStorage | FileSessionStorage, MemorySessionStorage]:
    durable = durable if durable is not None else MemorySessionStorage()
    tab = tab if tab is not None else MemorySessionStorage()
    kwargs.setdefault("clock", _Clock())
    return SessionGate(_verifier(), durable, tab, **kwargs), durable, tab  # type: ignore[arg-type]


def _stored_session(hours_ago: float, *, remember_me: bool) -> str:
    return Session(
        username="dispatch",
        login_time=NOW - timedelta(hours=hours_ago),
        remember_me=remember_me,
    ).to_blob()


def test_verifier_accepts_only_matching_password() -> None:
    verifier = _verifier()

    assert verifier.verify("dispatch", "correct horse")
    assert not verifier.verify("dispatch", "wrong")
    assert not verifier.verify("someone", "correct horse")


def test_verifier_rejects_malformed_hash() -> None:
    assert not Pbkdf2CredentialVerifier({"dispatch": "plaintext"}).verify("dispatch", "plaintext")


def test_hash_password_is_salted() -> None:
    assert hash_password("pw", iterations=1000) != hash_password("pw", iterations=1000)
    assert hash_password("pw", salt=b"0" * 16, iterations=1000).startswith("pbkdf2_sha256$1000$")


def test_local_login_remember_me_goes_to_durable_tier() -> None:
    gate, durable, tab = _gate()

    session = gate.login_local("dispatch", "correct horse", remember_me=True)

    blob = json.loads(durable.get("adminAuth") or "{}")
    assert blob["username"] == "dispatch"
    assert blob["rememberMe"] is True
    assert blob["loginTime"] == "2026-05-10T12:00:00.000Z"
    assert tab.get("adminAuth") is None
    assert session.provider == "local"
    assert gate.is_authenticated


def test_local_login_without_remember_me_goes_to_tab_tier() -> None:
    gate, durable, tab = _gate()

    gate.login_local("dispatch", "correct horse")

    assert durable.get("adminAuth") is None
    assert tab.get("adminAuth") is not None


def test_bad_credentials_raise_auth_error() -> None:
    gate, durable, tab = _gate()

    with pytest.raises(AuthError):
        gate.login_local("dispatch", "nope")

    assert durable.get("adminAuth") is None
    assert tab.get("adminAuth") is None


def test_login_without_verifier_is_refused() -> None:
    gate = SessionGate(None, MemorySessionStorage(), MemorySessionStorage())

    with pytest.raises(AuthError):
        gate.login_local("dispatch", "correct horse")


def test_durable_session_older_than_a_day_is_expired() -> None:
    durable = MemorySessionStorage()
    durable.set("adminAuth", _stored_session(25, remember_me=True))
    gate, _, _ = _gate(durable)

    assert gate.restore_on_load() is None
    assert durable.get("adminAuth") is None


def test_durable_session_younger_than_a_day_is_restored() -> None:
    durable = MemorySessionStorage()
    durable.set("adminAuth", _stored_session(23, remember_me=True))
    gate, _, _ = _gate(durable)

    session = gate.restore_on_load()

    assert session is not None
    assert session.username == "dispatch"
    assert gate.is_session_valid()


def test_tab_session_expires_after_eight_hours() -> None:
    tab = MemorySessionStorage()
    tab.set("adminAuth", _stored_session(9, remember_me=False))
    gate, _, _ = _gate(tab=tab)

    assert gate.restore_on_load() is None


def test_tab_blob_follows_tab_expiry_even_if_marked_remember_me() -> None:
    tab = MemorySessionStorage()
    tab.set("adminAuth", _stored_session(9, remember_me=True))
    gate, _, _ = _gate(tab=tab)

    assert gate.restore_on_load() is None
    assert tab.get("adminAuth") is None


def test_restore_checks_durable_before_tab() -> None:
    durable = MemorySessionStorage()
    tab = MemorySessionStorage()
    durable.set("adminAuth", Session(username="durable", login_time=NOW, remember_me=True).to_blob())
    tab.set("adminAuth", Session(username="tab", login_time=NOW).to_blob())
    gate, _, _ = _gate(durable, tab)

    session = gate.restore_on_load()

    assert session is not None
    assert session.username == "durable"


def test_unreadable_blob_is_discarded() -> None:
    durable = MemorySessionStorage()
    durable.set("adminAuth", '{"username": "x"}')
    gate, _, _ = _gate(durable)

    assert gate.restore_on_load() is None
    assert durable.get("adminAuth") is None


def test_refresh_extends_the_window() -> None:
    clock = _Clock()
    gate, durable, _ = _gate(clock=clock)
    gate.login_local("dispatch", "correct horse", remember_me=True)

    clock.now = NOW + timedelta(hours=20)
    refreshed = gate.refresh()
    clock.now = NOW + timedelta(hours=30)

    assert refreshed.login_time == NOW + timedelta(hours=20)
    assert refreshed.username == "dispatch"
    assert gate.is_session_valid()
    assert json.loads(durable.get("adminAuth") or "{}")["loginTime"] == "2026-05-11T08:00:00.000Z"


def test_refresh_of_expired_session_fails() -> None:
    clock = _Clock()
    gate, _, tab = _gate(clock=clock)
    gate.login_local("dispatch", "correct horse")
    clock.now = NOW + timedelta(hours=9)

    with pytest.raises(SessionExpiredError):
        gate.refresh()
    assert tab.get("adminAuth") is None
    assert not gate.is_authenticated


@pytest.mark.asyncio
async def test_federated_logout_clears_tiers_and_signs_out() -> None:
    provider = _Provider()
    gate, durable, tab = _gate(identity_provider=provider)

    session = gate.login_federated(
        {
            "uid": "g-123",
            "displayName": "Asha Rao",
            "email": "asha@example.com",
            "photoURL": "https://example.com/a.png",
            "providerId": "google.com",
        }
    )
    assert session.is_federated
    assert json.loads(durable.get("adminAuth") or "{}")["photoURL"] == "https://example.com/a.png"

    await gate.logout()

    assert provider.signed_out == 1
    assert durable.get("adminAuth") is None
    assert tab.get("adminAuth") is None
    assert gate.current is None


@pytest.mark.asyncio
async def test_logout_signs_out_stored_federated_session_without_restore() -> None:
    provider = _Provider()
    durable = MemorySessionStorage()
    durable.set(
        "adminAuth",
        Session(uid="g-123", username="asha@example.com", login_time=NOW, remember_me=True, is_federated=True).to_blob(),
    )
    gate, _, _ = _gate(durable, identity_provider=provider)

    await gate.logout()

    assert provider.signed_out == 1
    assert durable.get("adminAuth") is None


@pytest.mark.asyncio
async def test_local_logout_does_not_touch_identity_provider() -> None:
    provider = _Provider()
    gate, _, _ = _gate(identity_provider=provider)
    gate.login_local("dispatch", "correct horse")

    await gate.logout()

    assert provider.signed_out == 0


def test_federated_result_without_uid_is_rejected() -> None:
    gate, _, _ = _gate()

    with pytest.raises(AuthError):
        gate.login_federated({"email": "asha@example.com"})


def test_file_storage_survives_new_instances(tmp_path: Path) -> None:
    path = tmp_path / "state" / "session.json"
    FileSessionStorage(path).set("adminAuth", "blob")

    storage = FileSessionStorage(path)
    assert storage.get("adminAuth") == "blob"
    storage.remove("adminAuth")
    assert FileSessionStorage(path).get("adminAuth") is None


def test_gate_from_config_uses_session_file(tmp_path: Path) -> None:
    config = FleetConfig(session_file=str(tmp_path / "s.json"))
    gate = SessionGate.from_config(config, _verifier(), clock=_Clock())

    gate.login_local("dispatch", "correct horse", remember_me=True)

    assert SessionGate.from_config(config, None, clock=_Clock()).restore_on_load() is not None
