from __future__ import annotations

import copy
from typing import Any, Protocol

from .models import FilterState


OPTED_IN = "opted_in"
GLOBAL_FILTER = "global_filter"
ALLOWED_ACCOUNTS = "allowed_accounts"

TABLES = (OPTED_IN, GLOBAL_FILTER, ALLOWED_ACCOUNTS)


class KeyValueStorage(Protocol):
    """Durable key-value capability the permission store is built on."""

    def get(self, table: str, key: str, default: Any) -> Any: ...

    def set(self, table: str, key: str, value: Any) -> None: ...


class StateStorage:
    """
    `KeyValueStorage` over the three tables of a `FilterState`.

    Values are copied on the way in and out so callers never share a list
    with the underlying state. Pair with `S3StateStore` to persist `state`.
    """

    def __init__(self, state: FilterState | None = None) -> None:
        self.state = state if state is not None else FilterState.empty()

    def _table(self, table: str) -> dict:
        if table not in TABLES:
            raise KeyError(f"Unknown table: {table}")
        return getattr(self.state, table)

    def get(self, table: str, key: str, default: Any) -> Any:
        data = self._table(table)
        if key not in data:
            return default
        return copy.copy(data[key])

    def set(self, table: str, key: str, value: Any) -> None:
        self._table(table)[key] = copy.copy(value)


__all__ = [
    "KeyValueStorage",
    "StateStorage",
    "OPTED_IN",
    "GLOBAL_FILTER",
    "ALLOWED_ACCOUNTS",
    "TABLES",
]
