"""
State models and storage for the account filter.

`FilterState` is the logical schema of the three permission tables.
`StateStorage` exposes it as the key-value capability the permission store
expects, and `S3StateStore` persists it as encrypted JSON in S3.
"""

from .models import FilterState
from .storage import KeyValueStorage, StateStorage

__all__ = ["FilterState", "KeyValueStorage", "StateStorage"]
