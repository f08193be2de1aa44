from __future__ import annotations

import time
from typing import Any, Dict, Optional, Union

import httpx
import structlog

log = structlog.get_logger()

DEFAULT_API_BASE = "https://api.telegram.org"
MAX_ATTEMPTS = 5
RETRY_STATUSES = (429, 500, 502, 503, 504)


class TelegramError(RuntimeError):
    """Base error for Telegram client."""


class TelegramApiError(TelegramError):
    """API returned an error payload or unexpected structure."""


class TelegramClient:
    """
    Minimal Telegram Bot API client used to deliver filter notifications.

    - Sends JSON bodies to `sendMessage`.
    - Retries transport errors and 429/5xx with exponential backoff, honoring
      `parameters.retry_after` when Telegram provides it.
    - `sleep` is injectable so tests do not wait on backoff.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ) -> None:
        if not token:
            raise ValueError("token is required")
        self._owns_client = client is None
        base_url = f"{api_base.rstrip('/')}/bot{token}"
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send_message(
        self,
        chat_id: Union[int, str],
        text: str,
        *,
        disable_notification: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Send a text message; returns the Message object on success."""
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if disable_notification is not None:
            payload["disable_notification"] = disable_notification

        data = self._request("sendMessage", payload)
        # Envelope: { ok: bool, result?: {...}, description?: str }
        if not isinstance(data, dict) or "ok" not in data:
            raise TelegramApiError("Malformed response from Telegram Bot API")
        if data.get("ok") is True and isinstance(data.get("result"), dict):
            return data["result"]
        desc = data.get("description") or "Telegram API error"
        raise TelegramApiError(f"{desc} (code={data.get('error_code')})")

    def _request(self, method: str, json_body: Dict[str, Any]) -> Dict[str, Any]:
        backoff = 0.5
        last_exc: Optional[Exception] = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                resp = self._client.post(f"/{method}", json=json_body)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
                log.warning("telegram_transport_error", method=method, attempt=attempt, error=str(exc))
                self._sleep(backoff)
                backoff = min(backoff * 2, 8.0)
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError as exc:
                    raise TelegramApiError("Failed to parse JSON from Telegram API") from exc

            if resp.status_code not in RETRY_STATUSES:
                raise TelegramApiError(f"HTTP {resp.status_code} from Telegram: {resp.text[:200]}")

            delay = _retry_after(resp)
            if delay is None:
                delay = backoff
            log.warning("telegram_retry", method=method, attempt=attempt, status=resp.status_code, delay=delay)
            self._sleep(min(delay, 10.0))
            backoff = min(backoff * 2, 8.0)

        if last_exc is not None:
            raise TelegramError("Failed request after retries") from last_exc
        raise TelegramError("Failed request after retries")


def _retry_after(resp: httpx.Response) -> Optional[float]:
    # 429 bodies look like { ok:false, error_code:429, parameters: { retry_after: N } }
    try:
        body = resp.json()
    except ValueError:
        return None
    params = body.get("parameters") if isinstance(body, dict) else None
    if isinstance(params, dict):
        ra = params.get("retry_after")
        if isinstance(ra, (int, float)) and not isinstance(ra, bool):
            return float(ra)
    return None


__all__ = [
    "TelegramClient",
    "TelegramError",
    "TelegramApiError",
]
