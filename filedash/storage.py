"""
Blob storage for the file manager: S3-compatible object storage and an
in-memory double for tests.

A container is a key prefix inside the configured bucket, so ``report.pdf``
in container ``uploads`` lives at ``uploads/report.pdf``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from filedash.errors import NotFoundError, StorageFault, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_MISSING_CODES = {"NoSuchKey", "NotFound", "404"}


@dataclass
class StoredFile:
    name: str
    url: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "size": self.size,
            "last_modified": self.last_modified,
        }


def container_prefix(container: str) -> str:
    if not container or "/" in container or container in (".", ".."):
        raise ValidationError("container", f"Invalid container name {container!r}")
    return f"{container}/"


def object_key(container: str, name: str) -> str:
    """Return the bucket key for ``name`` in ``container``."""
    prefix = container_prefix(container)
    if not name or name.startswith("/") or "\\" in name:
        raise ValidationError("file_name", f"Invalid file name {name!r}")
    if any(part in ("", ".", "..") for part in name.split("/")):
        raise ValidationError("file_name", f"Invalid file name {name!r}")
    return f"{prefix}{name}"


class StorageClient(Protocol):
    """Defines the operations the file manager needs from object storage."""

    def upload_bytes(
        self,
        container: str,
        name: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredFile:
        ...

    def download_file(self, container: str, name: str) -> Tuple[bytes, str]:
        """Return the object bytes and the content type it was uploaded with."""
        ...

    def delete_file(self, container: str, name: str) -> None:
        ...

    def list_files(self, container: str) -> List[StoredFile]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self,
        container: str,
        name: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredFile:
        key = object_key(container, name)
        modified = datetime.now(timezone.utc)
        self.stored_objects[key] = (bytes(data), content_type, modified)
        return StoredFile(
            name=name, url=f"{self.base_url}/{key}", size=len(data), last_modified=modified
        )

    def download_file(self, container: str, name: str) -> Tuple[bytes, str]:
        key = object_key(container, name)
        stored = self.stored_objects.get(key)
        if stored is None:
            raise NotFoundError(f"File {name!r} not found in container {container!r}")
        data, content_type, _ = stored
        return data, content_type

    def delete_file(self, container: str, name: str) -> None:
        key = object_key(container, name)
        if self.stored_objects.pop(key, None) is None:
            raise NotFoundError(f"File {name!r} not found in container {container!r}")

    def list_files(self, container: str) -> List[StoredFile]:
        prefix = container_prefix(container)
        files = []
        for key in sorted(self.stored_objects):
            if not key.startswith(prefix):
                continue
            data, _, modified = self.stored_objects[key]
            files.append(
                StoredFile(
                    name=key[len(prefix):],
                    url=f"{self.base_url}/{key}",
                    size=len(data),
                    last_modified=modified,
                )
            )
        return files


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, MinIO, Tencent COS, ...).
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def _url(self, key: str) -> str:
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{quote(key)}"
        return f"https://{self.bucket}.s3.amazonaws.com/{quote(key)}"

    def _fault(self, action: str, key: str, exc: Exception) -> Exception:
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return NotFoundError(f"File {key!r} not found")
        logger.exception("Storage %s failed for %s", action, key)
        return StorageFault(f"Storage {action} failed for {key!r}: {exc}")

    def upload_bytes(
        self,
        container: str,
        name: str,
        data: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> StoredFile:
        key = object_key(container, name)
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._fault("upload", key, exc) from exc
        return StoredFile(
            name=name,
            url=self._url(key),
            size=len(data),
            last_modified=datetime.now(timezone.utc),
        )

    def download_file(self, container: str, name: str) -> Tuple[bytes, str]:
        key = object_key(container, name)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            content_type = response.get("ContentType") or DEFAULT_CONTENT_TYPE
            return response["Body"].read(), content_type
        except (BotoCoreError, ClientError) as exc:
            raise self._fault("download", key, exc) from exc

    def delete_file(self, container: str, name: str) -> None:
        key = object_key(container, name)
        try:
            # delete_object succeeds for missing keys, so check first.
            self._client.head_object(Bucket=self.bucket, Key=key)
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise self._fault("delete", key, exc) from exc

    def list_files(self, container: str) -> List[StoredFile]:
        prefix = container_prefix(container)
        files = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    files.append(
                        StoredFile(
                            name=item["Key"][len(prefix):],
                            url=self._url(item["Key"]),
                            size=item.get("Size"),
                            last_modified=item.get("LastModified"),
                        )
                    )
        except (BotoCoreError, ClientError) as exc:
            raise self._fault("list", prefix, exc) from exc
        return files
