from __future__ import annotations

import json
from typing import Any, Dict, Optional, Tuple

import boto3
import structlog
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from .models import FilterState

log = structlog.get_logger()

# S3 answers a failed If-Match/If-None-Match with 412, and a conditional write
# that races another conditional write on the same key with 409.
_CONFLICT_CODES = ("PreconditionFailed", "412", "ConditionalRequestConflict", "409")
_MISSING_CODES = ("NoSuchKey", "404")


class OptimisticLockError(Exception):
    """Raised when a conditional write finds the object changed (or created) underneath it."""


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get("Error", {}).get("Code")


class S3StateStore:
    """
    One Fernet-encrypted JSON document in S3 holding the whole `FilterState`.

    Usage
    - `read()` returns `(state, etag)`; a missing object reads as
      `(FilterState.empty(), None)`.
    - `write(state, if_match=etag)` replaces the object only if it still has
      that ETag. `write(state, if_absent=True)` creates it only if nobody else
      has. Either precondition failing raises `OptimisticLockError`, so a caller
      can re-read and re-apply. A bare `write(state)` overwrites unconditionally.
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        key: str,
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._bucket = bucket
        self._key = key
        self._fernet = Fernet(fernet_key.encode("utf-8") if isinstance(fernet_key, str) else fernet_key)

    @property
    def location(self) -> str:
        return f"s3://{self._bucket}/{self._key}"

    def _encode(self, state: FilterState) -> bytes:
        # Stable key order so identical state encrypts from identical plaintext
        plaintext = json.dumps(state.model_dump(), separators=(",", ":"), sort_keys=True)
        return self._fernet.encrypt(plaintext.encode("utf-8"))

    def _decode(self, blob: bytes) -> FilterState:
        try:
            plaintext = self._fernet.decrypt(blob)
        except InvalidToken as ex:
            raise ValueError(f"Cannot decrypt filter state at {self.location}") from ex
        try:
            return FilterState.model_validate_json(plaintext)
        except ValidationError as ex:
            raise ValueError(f"Malformed filter state at {self.location}") from ex

    def read(self) -> Tuple[FilterState, Optional[str]]:
        """Fetch and decrypt the state document.

        Raises ValueError for undecryptable or malformed content; other S3
        failures propagate as ClientError.
        """
        try:
            resp = self._s3.get_object(Bucket=self._bucket, Key=self._key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return (FilterState.empty(), None)
            raise
        return (self._decode(resp["Body"].read()), resp.get("ETag"))

    def write(
        self,
        state: FilterState,
        *,
        if_match: Optional[str] = None,
        if_absent: bool = False,
    ) -> str:
        """Encrypt and store `state`; returns the new ETag."""
        if if_match is not None and if_absent:
            raise ValueError("if_match and if_absent are mutually exclusive")

        params: Dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._key,
            "Body": self._encode(state),
            "ContentType": "application/octet-stream",
        }
        if if_match is not None:
            params["IfMatch"] = if_match
        elif if_absent:
            params["IfNoneMatch"] = "*"

        try:
            resp = self._s3.put_object(**params)
        except ClientError as e:
            if _error_code(e) in _CONFLICT_CODES:
                log.info("state_precondition_failed", location=self.location, if_match=if_match, if_absent=if_absent)
                raise OptimisticLockError(f"{self.location} changed since it was read") from e
            raise
        return str(resp.get("ETag"))


__all__ = ["S3StateStore", "OptimisticLockError"]
