from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from site_receipts.core.config import settings
from site_receipts.core.errors import StorageError
from site_receipts.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)


class ObjectNotFound(StorageError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int
    modified_at: datetime | None = None


class ObjectStorage:
    def put(self, *, key: str, body: bytes) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def exists(self, *, key: str) -> bool:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def list(self, *, prefix: str) -> list[StoredObject]:  # pragma: no cover
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    def __init__(self, root: Path):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            log_exception(
                logger,
                "storage.put.failure",
                backend="local",
                storage_key=key,
                byte_size=len(body),
            )
            raise StorageError(f"Could not write object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend="local",
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise ObjectNotFound(f"Object not found: {key}")
        try:
            return path.read_bytes()
        except OSError as e:
            log_exception(logger, "storage.get.failure", backend="local", storage_key=key)
            raise StorageError(f"Could not read object: {key}") from e

    def exists(self, *, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, *, key: str) -> None:
        path = self._path(key)
        if not path.exists():
            return
        try:
            path.unlink()
        except OSError as e:
            log_exception(logger, "storage.delete.failure", backend="local", storage_key=key)
            raise StorageError(f"Could not delete object: {key}") from e

    def list(self, *, prefix: str) -> list[StoredObject]:
        base = self._path(prefix)
        if not base.is_dir():
            return []
        root = self._root.resolve()
        objects = []
        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            stat = path.stat()
            objects.append(
                StoredObject(
                    key=path.relative_to(root).as_posix(),
                    byte_size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return objects


class S3ObjectStorage(ObjectStorage):
    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"

        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        config = Config(
            s3={"addressing_style": "virtual"},
            connect_timeout=30,
            read_timeout=60,
        )
        self._client = session.client(
            "s3", endpoint_url=settings.s3_endpoint_url or None, config=config
        )
        self._bucket = settings.s3_bucket

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        try:
            self._client.put_object(Bucket=self._bucket, Key=key, Body=body)
        except (BotoCoreError, ClientError) as e:
            log_exception(
                logger,
                "storage.put.failure",
                backend="s3",
                storage_key=key,
                byte_size=len(body),
            )
            raise StorageError(f"Could not write object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend="s3",
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            return resp["Body"].read()
        except ClientError as e:
            code = (e.response.get("Error") or {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                raise ObjectNotFound(f"Object not found: {key}") from e
            log_exception(logger, "storage.get.failure", backend="s3", storage_key=key)
            raise StorageError(f"Could not read object: {key}") from e
        except BotoCoreError as e:
            log_exception(logger, "storage.get.failure", backend="s3", storage_key=key)
            raise StorageError(f"Could not read object: {key}") from e

    def exists(self, *, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError:
            return False
        return True

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.delete.failure", backend="s3", storage_key=key)
            raise StorageError(f"Could not delete object: {key}") from e

    def list(self, *, prefix: str) -> list[StoredObject]:
        objects = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append(
                        StoredObject(
                            key=item["Key"],
                            byte_size=item.get("Size", 0),
                            modified_at=item.get("LastModified"),
                        )
                    )
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.list.failure", backend="s3", prefix=prefix)
            raise StorageError(f"Could not list objects: {prefix}") from e
        return objects


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3ObjectStorage()
    else:
        root = settings.local_storage_path
        if not root.is_absolute():
            root = Path(os.getcwd()) / root
        _storage = LocalObjectStorage(root)
    return _storage
