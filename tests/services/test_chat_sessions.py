# tests/services/test_chat_sessions.py
"""Tests for the chat session store."""

import pytest

from openmkt_relay.services.chat_sessions import ChatSessionRecord, ChatSessionStore
from tests.conftest import FakeClock


def _record(did: str = "did:plc:alice", **overrides) -> ChatSessionRecord:
    fields = {
        "did": did,
        "handle": "alice.test",
        "pds_endpoint": "https://pds.test",
        "access_jwt": "access-1",
        "refresh_jwt": "refresh-1",
    }
    fields.update(overrides)
    return ChatSessionRecord(**fields)


@pytest.fixture
def store(clock: FakeClock) -> ChatSessionStore:
    return ChatSessionStore(clock=clock)


def test_save_and_get(store: ChatSessionStore, clock: FakeClock) -> None:
    saved = store.save(_record())

    assert store.get("did:plc:alice") == saved
    assert saved.updated_at == clock.now
    assert "did:plc:alice" in store
    assert len(store) == 1


def test_save_replaces_existing_record(store: ChatSessionStore) -> None:
    store.save(_record())
    store.save(_record(access_jwt="access-2", refresh_jwt=None))

    record = store.get("did:plc:alice")
    assert record is not None
    assert record.access_jwt == "access-2"
    assert record.refresh_jwt is None
    assert len(store) == 1


def test_update_on_absent_did_is_noop(store: ChatSessionStore) -> None:
    assert store.update("did:plc:nobody", access_jwt="x") is None
    assert store.get("did:plc:nobody") is None
    assert len(store) == 0


def test_update_merges_fields_and_bumps_timestamp(store: ChatSessionStore, clock: FakeClock) -> None:
    original = store.save(_record())
    clock.advance(5)

    updated = store.update("did:plc:alice", access_jwt="access-2")

    assert updated is not None
    assert updated.access_jwt == "access-2"
    assert updated.refresh_jwt == "refresh-1"
    assert updated.handle == original.handle
    assert updated.updated_at > original.updated_at


def test_updated_at_strictly_increases_with_frozen_clock(store: ChatSessionStore) -> None:
    stamps = [store.save(_record()).updated_at]
    for index in range(3):
        stamps.append(store.update("did:plc:alice", access_jwt=f"a{index}").updated_at)

    assert stamps == sorted(stamps)
    assert len(set(stamps)) == len(stamps)


def test_update_rejects_immutable_or_unknown_fields(store: ChatSessionStore) -> None:
    store.save(_record())

    with pytest.raises(ValueError):
        store.update("did:plc:alice", did="did:plc:mallory")
    with pytest.raises(ValueError):
        store.update("did:plc:alice", password="hunter2")


def test_remove(store: ChatSessionStore) -> None:
    store.save(_record())

    assert store.remove("did:plc:alice") is True
    assert store.remove("did:plc:alice") is False
    assert store.get("did:plc:alice") is None


def test_prune_idle_drops_only_stale_records(store: ChatSessionStore, clock: FakeClock) -> None:
    store.save(_record("did:plc:stale"))
    clock.advance(100)
    store.save(_record("did:plc:fresh"))
    clock.advance(50)

    assert store.prune_idle(120) == 1
    assert "did:plc:stale" not in store
    assert "did:plc:fresh" in store
