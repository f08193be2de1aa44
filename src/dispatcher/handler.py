from __future__ import annotations

from typing import Any, Dict, Literal, Optional

import structlog
from pydantic import BaseModel, StrictBool, ValidationError, field_validator, model_validator

from account_filter.errors import FilterError
from account_filter.events import BufferedSink, LogSink, NotificationSink
from account_filter.notify import TelegramSink
from account_filter.store import PermissionStore
from common.config import FilterConfig, load_ssm_params, require
from common.logging import configure_logging
from common.telegram import TelegramClient
from state.s3_store import OptimisticLockError, S3StateStore
from state.storage import StateStorage

log = structlog.get_logger()

Operation = Literal[
    "get_optin_status",
    "change_optin_status",
    "get_global_filter",
    "change_global_filter",
    "get_allowed_accounts",
    "add_to_allowed",
    "is_contact_allowed",
]

MUTATING = {"change_optin_status", "change_global_filter", "add_to_allowed"}

# Extra arguments each operation needs beyond `id`
_REQUIRED_ARGS: Dict[str, tuple[str, ...]] = {
    "change_optin_status": ("status",),
    "change_global_filter": ("status",),
    "add_to_allowed": ("id_to_add",),
    "is_contact_allowed": ("sender",),
}

_logging_configured = False


def _normalize_account_id(raw: Any) -> str:
    # Opaque ids: compare exactly, only surrounding whitespace is dropped
    if not isinstance(raw, str):
        raise ValueError(f"account id must be a string, got {type(raw).__name__}")
    s = raw.strip()
    if not s:
        raise ValueError("account id must not be empty")
    return s


class FilterRequest(BaseModel):
    """One operation against the permission store, as received by the dispatcher."""

    operation: Operation
    id: str
    caller: Optional[str] = None
    status: Optional[StrictBool] = None
    id_to_add: Optional[str] = None
    sender: Optional[str] = None

    @field_validator("id", "caller", "id_to_add", "sender", mode="before")
    @classmethod
    def _check_account_id(cls, v: Any) -> Any:
        if v is None:
            return v
        return _normalize_account_id(v)

    @model_validator(mode="after")
    def _check_arguments(self) -> "FilterRequest":
        if self.operation in MUTATING and self.caller is None:
            raise ValueError(f"{self.operation} requires an authenticated caller")
        for name in _REQUIRED_ARGS.get(self.operation, ()):
            if getattr(self, name) is None:
                raise ValueError(f"{self.operation} requires '{name}'")
        return self

    @property
    def mutating(self) -> bool:
        return self.operation in MUTATING


def _caller_from_event(event: Dict[str, Any]) -> Any:
    """Prefer the identity established by an API Gateway authorizer over the body."""
    ctx = event.get("requestContext")
    if isinstance(ctx, dict):
        authorizer = ctx.get("authorizer")
        if isinstance(authorizer, dict) and authorizer.get("principalId") is not None:
            return authorizer["principalId"]
    return event.get("caller")


def parse_request(event: Dict[str, Any]) -> FilterRequest:
    """Validate a raw Lambda event into a FilterRequest. Raises ValidationError."""
    body = {k: v for k, v in event.items() if k != "requestContext"}
    body["caller"] = _caller_from_event(event)
    return FilterRequest.model_validate(body)


def _apply(store: PermissionStore, req: FilterRequest) -> Any:
    if req.operation == "get_optin_status":
        return store.get_optin_status(req.id)
    if req.operation == "change_optin_status":
        return store.change_optin_status(caller=req.caller, id=req.id, status=req.status)
    if req.operation == "get_global_filter":
        return store.get_global_filter(req.id)
    if req.operation == "change_global_filter":
        return store.change_global_filter(caller=req.caller, id=req.id, status=req.status)
    if req.operation == "get_allowed_accounts":
        return store.get_allowed_accounts(req.id)
    if req.operation == "add_to_allowed":
        return store.add_to_allowed(caller=req.caller, id=req.id, id_to_add=req.id_to_add)
    if req.operation == "is_contact_allowed":
        return store.is_contact_allowed(req.id, req.sender)
    raise ValueError(f"Unsupported operation: {req.operation}")


def _ok(operation: str, result: Any) -> Dict[str, Any]:
    return {"ok": True, "operation": operation, "result": result}


def _error(operation: Optional[str], code: str, message: str) -> Dict[str, Any]:
    return {"ok": False, "operation": operation, "error": code, "message": message}


def execute(
    req: FilterRequest,
    *,
    state_store: S3StateStore,
    sink: NotificationSink,
    require_opt_in: bool = True,
    max_allowed: Optional[int] = None,
    write_attempts: int = 3,
) -> Dict[str, Any]:
    """
    Run one request against persisted state.

    - Reads state and its ETag, applies the operation on a fresh PermissionStore.
    - Reads and rejected mutations return without writing.
    - Successful mutations are written conditionally: `if_match` on the ETag that
      was read, or create-only when no state existed yet. On a conflict the whole
      attempt is repeated against the newer state, up to `write_attempts`.
    - OptIn events are buffered per attempt and delivered only after the
      write commits.
    """
    for attempt in range(1, write_attempts + 1):
        state, etag = state_store.read()
        buffer = BufferedSink()
        store = PermissionStore(
            StateStorage(state),
            sink=buffer,
            require_opt_in=require_opt_in,
            max_allowed=max_allowed,
        )
        try:
            result = _apply(store, req)
        except FilterError as e:
            return _error(req.operation, e.code, str(e))

        if not req.mutating:
            return _ok(req.operation, result)

        try:
            state_store.write(state, if_match=etag, if_absent=etag is None)
        except OptimisticLockError:
            log.warning("state_write_conflict", operation=req.operation, account=req.id, attempt=attempt)
            continue

        buffer.flush(sink)
        return _ok(req.operation, result)

    raise RuntimeError(f"Could not commit {req.operation} for {req.id!r} after {write_attempts} attempts")


def _chat_id(raw: str) -> int | str:
    try:
        return int(raw)
    except ValueError:
        return raw


def run_once(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle a single permission request.

    - Validates the event (invalid input → {"ok": False, "error": "InvalidRequest"}).
    - Resolves config from env and secrets from SSM under FILTER_PARAM_PREFIX.
    - OptIn events go to Telegram when telegram_bot_token and telegram_chat_id
      are both configured; otherwise they are logged.
    """
    try:
        req = parse_request(event)
    except ValidationError as e:
        log.info("invalid_request", errors=e.error_count())
        op = event.get("operation") if isinstance(event.get("operation"), str) else None
        return _error(op, "InvalidRequest", str(e))

    cfg = FilterConfig.from_env()
    params = load_ssm_params(cfg.param_prefix, ["fernet_key", "telegram_bot_token", "telegram_chat_id"])
    fernet_key = require(params.get("fernet_key"), f"{cfg.param_prefix}fernet_key")

    state_store = S3StateStore(bucket=cfg.bucket, key=cfg.key, fernet_key=fernet_key)
    options = dict(
        require_opt_in=cfg.require_opt_in,
        max_allowed=cfg.max_allowed,
        write_attempts=cfg.write_attempts,
    )

    token = params.get("telegram_bot_token")
    chat = params.get("telegram_chat_id")
    if token and chat:
        with TelegramClient(token) as tg:
            return execute(req, state_store=state_store, sink=TelegramSink(tg, _chat_id(chat)), **options)
    return execute(req, state_store=state_store, sink=LogSink(), **options)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry for permission requests.

    Environment:
    - FILTER_STATE_BUCKET, FILTER_STATE_KEY (default: filter-state.json), FILTER_PARAM_PREFIX
    - FILTER_REQUIRE_OPT_IN, FILTER_MAX_ALLOWED, FILTER_WRITE_ATTEMPTS (optional)
    - SSM under FILTER_PARAM_PREFIX must provide: fernet_key
    """
    global _logging_configured
    if not _logging_configured:
        configure_logging()
        _logging_configured = True
    return run_once(event if isinstance(event, dict) else {})
