from __future__ import annotations

from typing import Union

from common.telegram import TelegramClient

from .events import OptIn


def format_optin_notice(event: OptIn) -> str:
    """Return the operator-facing text for an opt-in status change."""
    header = f"🔔 [OPT-IN] {event.id}"
    status = "opted in" if event.status else "opted out"
    return "\n".join([header, f"Status: {status}"])


class TelegramSink:
    """
    Notification sink that forwards OptIn events to a Telegram chat.

    Errors from the Bot API propagate; the permission store delivers through
    `events.deliver`, which logs and drops them.
    """

    def __init__(self, client: TelegramClient, chat_id: Union[int, str]) -> None:
        self._client = client
        self._chat_id = chat_id

    def emit(self, event: OptIn) -> None:
        self._client.send_message(
            chat_id=self._chat_id,
            text=format_optin_notice(event),
            disable_notification=True,
        )


__all__ = ["format_optin_notice", "TelegramSink"]
