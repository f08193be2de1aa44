from __future__ import annotations


class FilterError(Exception):
    """Base error for permission-store operations.

    `code` is the stable name surfaced to callers (e.g. in dispatcher responses).
    """

    code = "FilterError"

    def __init__(self, account: str, message: str | None = None) -> None:
        self.account = account
        super().__init__(message or f"{self.code}: {account}")


class CallerIsNotOwner(FilterError):
    """Raised when the caller tries to mutate an account other than its own."""

    code = "CallerIsNotOwner"


class NotOptedIn(FilterError):
    """Raised when the account must be opted in for the operation but is not."""

    code = "NotOptedIn"


class ListFull(FilterError):
    """Raised when the allow-list already holds the configured maximum."""

    code = "ListFull"


__all__ = [
    "FilterError",
    "CallerIsNotOwner",
    "NotOptedIn",
    "ListFull",
]
