import os
import sys

import pytest


def pytest_configure():
    # Make `src/` importable so tests can import `account_filter`, `state`, `common` and `dispatcher`
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class _FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


class FakeS3:
    """In-memory S3 client honoring PutObject's IfMatch / IfNoneMatch preconditions."""

    def __init__(self) -> None:
        self._store = {}  # (bucket, key) -> {Body: bytes, ETag: str}
        self._version = 0
        self.puts = []

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str, IfMatch=None, IfNoneMatch=None):
        from botocore.exceptions import ClientError

        current = self._store.get((Bucket, Key))
        if IfNoneMatch == "*" and current is not None:
            raise ClientError({"Error": {"Code": "PreconditionFailed"}}, "PutObject")
        if IfMatch is not None and (current is None or current["ETag"] != IfMatch):
            raise ClientError({"Error": {"Code": "PreconditionFailed"}}, "PutObject")

        self._version += 1
        etag = f'"fake-{self._version}"'
        self._store[(Bucket, Key)] = {"Body": Body, "ETag": etag}
        self.puts.append({"Key": Key, "IfMatch": IfMatch, "IfNoneMatch": IfNoneMatch})
        return {"ETag": etag}

    def get_object(self, *, Bucket: str, Key: str):
        from botocore.exceptions import ClientError

        item = self._store.get((Bucket, Key))
        if not item:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _FakeBody(item["Body"]), "ETag": item["ETag"]}

    def keys(self):
        return sorted(k for _, k in self._store)


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()
