"""
Per-account contact permissions.

Modules:
- store: PermissionStore (ownership guard, opt-in, global filter, allow-list)
- errors: CallerIsNotOwner, NotOptedIn, ListFull
- events: OptIn event and notification sinks
- notify: Telegram delivery of OptIn events
"""

from .errors import CallerIsNotOwner, FilterError, ListFull, NotOptedIn
from .events import OptIn
from .store import PermissionStore

__all__ = [
    "PermissionStore",
    "OptIn",
    "FilterError",
    "CallerIsNotOwner",
    "NotOptedIn",
    "ListFull",
]
