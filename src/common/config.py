from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError


ENV_STATE_BUCKET = "FILTER_STATE_BUCKET"
ENV_STATE_KEY = "FILTER_STATE_KEY"  # optional; defaults to "filter-state.json"
ENV_PARAM_PREFIX = "FILTER_PARAM_PREFIX"
ENV_REQUIRE_OPT_IN = "FILTER_REQUIRE_OPT_IN"
ENV_MAX_ALLOWED = "FILTER_MAX_ALLOWED"
ENV_WRITE_ATTEMPTS = "FILTER_WRITE_ATTEMPTS"

DEFAULT_STATE_KEY = "filter-state.json"
DEFAULT_WRITE_ATTEMPTS = 3

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _parse_bool(raw: Optional[str], what: str, default: bool) -> bool:
    if raw is None:
        return default
    s = raw.strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise RuntimeError(f"Invalid boolean for {what}: {raw!r}")


def _parse_positive_int(raw: Optional[str], what: str) -> Optional[int]:
    if raw is None:
        return None
    try:
        n = int(raw)
    except ValueError as ex:
        raise RuntimeError(f"Invalid integer for {what}: {raw!r}") from ex
    if n <= 0:
        raise RuntimeError(f"{what} must be > 0, got {n}")
    return n


@dataclass(frozen=True)
class FilterConfig:
    """Deployment settings for the request dispatcher."""

    bucket: str
    param_prefix: str
    key: str = DEFAULT_STATE_KEY
    require_opt_in: bool = True
    max_allowed: Optional[int] = None
    write_attempts: int = DEFAULT_WRITE_ATTEMPTS

    @classmethod
    def from_env(cls) -> "FilterConfig":
        return cls(
            bucket=require(_getenv(ENV_STATE_BUCKET), ENV_STATE_BUCKET),
            param_prefix=require(_getenv(ENV_PARAM_PREFIX), ENV_PARAM_PREFIX),
            key=_getenv(ENV_STATE_KEY, DEFAULT_STATE_KEY),
            require_opt_in=_parse_bool(_getenv(ENV_REQUIRE_OPT_IN), ENV_REQUIRE_OPT_IN, True),
            max_allowed=_parse_positive_int(_getenv(ENV_MAX_ALLOWED), ENV_MAX_ALLOWED),
            write_attempts=_parse_positive_int(_getenv(ENV_WRITE_ATTEMPTS), ENV_WRITE_ATTEMPTS)
            or DEFAULT_WRITE_ATTEMPTS,
        )


def load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    """Fetch SecureString parameters under `prefix`; missing ones map to None."""
    ssm = boto3.client("ssm")
    names = list(names)
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


__all__ = ["FilterConfig", "load_ssm_params", "require"]
