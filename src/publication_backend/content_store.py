"""
Content storage for published documents.

One blob per file identifier. Re-uploads to the same file identifier
overwrite the blob in place, which is what keeps a public link stable
across the pending and fulfilled versions of a document.

Two backends are available:
- LocalContentStore: files under a content root directory (default)
- S3ContentStore: objects in an S3 bucket, through a boto3 client

The backend is picked from the ``content`` section of the settings by
``build_content_store``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from omegaconf import DictConfig

from .exceptions import ContentMissingInconsistency, StorageError
from .utils import ensure_directory

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".pdf"

_MISSING_S3_CODES = {"404", "NoSuchKey", "NotFound"}


class ContentStore:
    """Interface shared by the content backends."""

    def write(self, file_id: str, data: bytes) -> None:
        raise NotImplementedError

    def read(self, file_id: str) -> bytes:
        raise NotImplementedError

    def exists(self, file_id: str) -> bool:
        raise NotImplementedError

    def delete(self, file_id: str) -> bool:
        raise NotImplementedError


class LocalContentStore(ContentStore):
    """
    Stores each publication as ``{root}/{file_id}{extension}``.

    Writes go to a temporary file in the same directory and are then renamed
    over the target, so a reader never sees a half-written PDF.
    """

    def __init__(self, root: Path, extension: str = DEFAULT_EXTENSION):
        self.root = ensure_directory(Path(root))
        self.extension = extension

    def path_for(self, file_id: str) -> Path:
        return self.root / f"{file_id}{self.extension}"

    def write(self, file_id: str, data: bytes) -> None:
        destination = self.path_for(file_id)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".upload-", suffix=self.extension)
            try:
                with os.fdopen(fd, "wb") as buffer:
                    buffer.write(data)
                os.replace(tmp_name, destination)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Failed to write content for {file_id}: {exc}") from exc
        logger.debug(f"Wrote {len(data)} bytes to {destination}")

    def read(self, file_id: str) -> bytes:
        try:
            return self.path_for(file_id).read_bytes()
        except FileNotFoundError as exc:
            raise ContentMissingInconsistency(file_id) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read content for {file_id}: {exc}") from exc

    def exists(self, file_id: str) -> bool:
        return self.path_for(file_id).is_file()

    def delete(self, file_id: str) -> bool:
        """
        Remove the blob for a file identifier.

        Returns:
            True if a file was removed, False if there was nothing to remove

        Raises:
            StorageError: If the file exists but cannot be removed
        """
        try:
            self.path_for(file_id).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete content for {file_id}: {exc}") from exc
        return True


class S3ContentStore(ContentStore):
    """
    Stores each publication as the object ``{prefix}{file_id}{extension}``.

    Args:
        bucket: Bucket name
        prefix: Key prefix shared by all publications
        client: boto3 S3 client; created with ``boto3.client("s3")`` if omitted
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        extension: str = DEFAULT_EXTENSION,
        client: Optional[Any] = None,
    ):
        if not bucket:
            raise ValueError("S3 content backend requires a bucket name")
        self.bucket = bucket
        self.prefix = prefix
        self.extension = extension
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def key_for(self, file_id: str) -> str:
        return f"{self.prefix}{file_id}{self.extension}"

    def write(self, file_id: str, data: bytes) -> None:
        key = self.key_for(file_id)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 upload failed for s3://{self.bucket}/{key}: {exc}") from exc
        logger.debug(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")

    def read(self, file_id: str) -> bytes:
        key = self.key_for(file_id)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _MISSING_S3_CODES:
                raise ContentMissingInconsistency(file_id) from exc
            raise StorageError(f"S3 download failed for s3://{self.bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 download failed for s3://{self.bucket}/{key}: {exc}") from exc

    def exists(self, file_id: str) -> bool:
        key = self.key_for(file_id)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_S3_CODES:
                return False
            raise StorageError(f"S3 lookup failed for s3://{self.bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 lookup failed for s3://{self.bucket}/{key}: {exc}") from exc
        return True

    def delete(self, file_id: str) -> bool:
        if not self.exists(file_id):
            return False
        key = self.key_for(file_id)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 delete failed for s3://{self.bucket}/{key}: {exc}") from exc
        return True


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def build_content_store(settings: DictConfig, client: Optional[Any] = None) -> ContentStore:
    """
    Create the content backend named by ``settings.content.backend``.

    Raises:
        ValueError: If the backend name is unknown
    """
    content = settings.content
    backend = str(content.backend).lower()
    if backend == "local":
        return LocalContentStore(Path(content.root), extension=content.extension)
    if backend == "s3":
        return S3ContentStore(
            bucket=content.s3_bucket,
            prefix=content.s3_prefix,
            extension=content.extension,
            client=client,
        )
    raise ValueError(f"Unknown content backend: {content.backend!r}")
