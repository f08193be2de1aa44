from __future__ import annotations

import threading
from typing import List, Optional

import structlog

from state.storage import (
    ALLOWED_ACCOUNTS,
    GLOBAL_FILTER,
    OPTED_IN,
    KeyValueStorage,
    StateStorage,
)

from .errors import CallerIsNotOwner, ListFull, NotOptedIn
from .events import LogSink, NotificationSink, OptIn, deliver

log = structlog.get_logger()


class PermissionStore:
    """
    Per-account contact permissions: opt-in flag, global filter and allow-list.

    Rules
    - Reads never fail and return defaults (False, False, []) for unknown accounts.
    - Every mutation takes the authenticated `caller` and is only permitted when
      `caller == id` (owner-only). A rejected call leaves state untouched.
    - With `require_opt_in` (default), changing the global filter or appending to
      the allow-list also requires the account to be opted in. Ownership is
      checked first.
    - Opt-in changes emit an `OptIn` event on every success; delivery failures
      are logged and never fail the mutation.
    - `max_allowed` caps the allow-list length (None = unbounded).

    All operations run under one re-entrant lock, so read-modify-write sequences
    are atomic with respect to other threads using the same store. Notifications
    are delivered after the lock is released.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        *,
        sink: Optional[NotificationSink] = None,
        require_opt_in: bool = True,
        max_allowed: Optional[int] = None,
    ) -> None:
        if max_allowed is not None and max_allowed <= 0:
            raise ValueError("max_allowed must be > 0")
        self._storage = storage if storage is not None else StateStorage()
        self._sink = sink if sink is not None else LogSink()
        self._require_opt_in = require_opt_in
        self._max_allowed = max_allowed
        self._lock = threading.RLock()

    @property
    def require_opt_in(self) -> bool:
        return self._require_opt_in

    # --------------- Guards ---------------
    def _ensure_owner(self, caller: str, id: str, operation: str) -> None:
        if caller != id:
            log.info("mutation_denied", operation=operation, account=id, caller=caller, reason=CallerIsNotOwner.code)
            raise CallerIsNotOwner(id, f"caller {caller!r} does not own account {id!r}")

    def _ensure_opted_in(self, id: str, operation: str) -> None:
        if self._require_opt_in and not self._optin_or_default(id):
            log.info("mutation_denied", operation=operation, account=id, reason=NotOptedIn.code)
            raise NotOptedIn(id, f"account {id!r} is not opted in")

    # --------------- Defaults ---------------
    def _optin_or_default(self, id: str) -> bool:
        return bool(self._storage.get(OPTED_IN, id, False))

    def _global_or_default(self, id: str) -> bool:
        return bool(self._storage.get(GLOBAL_FILTER, id, False))

    def _allowed_or_default(self, id: str) -> List[str]:
        return list(self._storage.get(ALLOWED_ACCOUNTS, id, []))

    # --------------- Opt-in ---------------
    def get_optin_status(self, id: str) -> bool:
        with self._lock:
            return self._optin_or_default(id)

    def change_optin_status(self, *, caller: str, id: str, status: bool) -> None:
        with self._lock:
            self._ensure_owner(caller, id, "change_optin_status")
            self._storage.set(OPTED_IN, id, bool(status))
            log.info("optin_status_changed", account=id, status=bool(status))
            event = OptIn(id=id, status=bool(status))
        # Outside the lock: a slow sink must not stall other operations
        deliver(self._sink, event)

    # --------------- Global filter ---------------
    def get_global_filter(self, id: str) -> bool:
        with self._lock:
            return self._global_or_default(id)

    def change_global_filter(self, *, caller: str, id: str, status: bool) -> None:
        with self._lock:
            self._ensure_owner(caller, id, "change_global_filter")
            self._ensure_opted_in(id, "change_global_filter")
            self._storage.set(GLOBAL_FILTER, id, bool(status))
            log.info("global_filter_changed", account=id, status=bool(status))

    # --------------- Allow-list ---------------
    def get_allowed_accounts(self, id: str) -> List[str]:
        with self._lock:
            return self._allowed_or_default(id)

    def add_to_allowed(self, *, caller: str, id: str, id_to_add: str) -> None:
        with self._lock:
            self._ensure_owner(caller, id, "add_to_allowed")
            self._ensure_opted_in(id, "add_to_allowed")
            allowed = self._allowed_or_default(id)
            if self._max_allowed is not None and len(allowed) >= self._max_allowed:
                log.info("mutation_denied", operation="add_to_allowed", account=id, reason=ListFull.code)
                raise ListFull(id, f"allow-list for {id!r} already holds {self._max_allowed} entries")
            allowed.append(id_to_add)
            self._storage.set(ALLOWED_ACCOUNTS, id, allowed)
            log.info("allowed_account_added", account=id, added=id_to_add, size=len(allowed))

    # --------------- Decision ---------------
    def is_contact_allowed(self, id: str, sender: str) -> bool:
        """Return True if `sender` may contact `id` under its current settings.

        Accounts that are not opted in do not filter. Otherwise an allow-list
        entry always wins, and the global filter decides for everyone else.

        Opt-in is what switches filtering on, also with `require_opt_in=False`:
        an account may then prepare its global filter and allow-list while
        opted out, and they only take effect once it opts in.
        """
        with self._lock:
            if not self._optin_or_default(id):
                return True
            if sender in self._allowed_or_default(id):
                return True
            return self._global_or_default(id)


__all__ = ["PermissionStore"]
