from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class FilterState(BaseModel):
    """
    Persistent permission state serialized to JSON and encrypted at rest.

    Fields
    - opted_in: account id -> whether the account participates in filtering.
    - global_filter: account id -> default contact policy (True allows everyone,
      False denies everyone not on the allow-list).
    - allowed_accounts: account id -> ordered allow-list of account ids.
      Append-only; duplicates are kept in insertion order.

    Notes
    - Absent keys mean the default (False, False, []). Nothing is written for an
      account until that account performs a successful mutation.
    """

    opted_in: Dict[str, bool] = Field(
        default_factory=dict,
        description="Map of account id to opt-in flag",
    )
    global_filter: Dict[str, bool] = Field(
        default_factory=dict,
        description="Map of account id to global filter flag",
    )
    allowed_accounts: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Map of account id to its allow-list",
    )

    @classmethod
    def empty(cls) -> "FilterState":
        """Convenience constructor for a fresh, empty state."""
        return cls()
