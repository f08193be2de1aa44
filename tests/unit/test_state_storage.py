from __future__ import annotations

import pytest

from state.models import FilterState
from state.storage import ALLOWED_ACCOUNTS, GLOBAL_FILTER, OPTED_IN, StateStorage


def test_get_returns_default_on_miss():
    storage = StateStorage()
    assert storage.get(OPTED_IN, "alice", False) is False
    assert storage.get(GLOBAL_FILTER, "alice", False) is False
    assert storage.get(ALLOWED_ACCOUNTS, "alice", []) == []


def test_set_writes_through_to_state():
    state = FilterState.empty()
    storage = StateStorage(state)

    storage.set(OPTED_IN, "alice", True)
    storage.set(ALLOWED_ACCOUNTS, "alice", ["bob"])

    assert state.opted_in == {"alice": True}
    assert state.allowed_accounts == {"alice": ["bob"]}
    assert state.global_filter == {}


def test_values_are_copied_in_and_out():
    storage = StateStorage()
    src = ["bob"]
    storage.set(ALLOWED_ACCOUNTS, "alice", src)
    src.append("mallory")

    out = storage.get(ALLOWED_ACCOUNTS, "alice", [])
    out.append("eve")

    assert storage.get(ALLOWED_ACCOUNTS, "alice", []) == ["bob"]


def test_unknown_table_raises():
    storage = StateStorage()
    with pytest.raises(KeyError):
        storage.get("contacts", "alice", None)
    with pytest.raises(KeyError):
        storage.set("contacts", "alice", True)
