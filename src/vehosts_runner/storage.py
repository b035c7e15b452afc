# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

import posixpath
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiofiles  # type: ignore[import-untyped]
import anyio
import boto3
from botocore.exceptions import ClientError

from vehosts_runner.exceptions import ArtifactNotFoundError, InvalidArtifactPathError
from vehosts_runner.models import normalize_path
from vehosts_runner.utils.logger import logger

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def storage_key(owner_key: str, project_slug: str, file_path: str) -> str:
    """Builds the artifact key ``{owner_key}/{project_slug}{/file_path}``.

    Raises:
        InvalidArtifactPathError: If a segment is empty or ``..``, or the file
            path climbs out of the project with ``..``.
    """
    for segment in (owner_key, project_slug):
        if not segment or "/" in segment or segment in (".", ".."):
            raise InvalidArtifactPathError(f"{owner_key}/{project_slug}")

    path = normalize_path(file_path)
    if ".." in path.split("/"):
        raise InvalidArtifactPathError(file_path)
    return f"{owner_key}/{project_slug}{posixpath.normpath(path)}"


@runtime_checkable
class ArtifactStore(Protocol):
    """Protocol for project file storage backends."""

    async def get(self, key: str) -> bytes:
        """Returns the object stored at ``key``.

        Raises:
            ArtifactNotFoundError: If no object exists at ``key``.
        """
        ...

    async def put(self, key: str, data: bytes) -> None:
        """Stores ``data`` at ``key``, replacing any existing object."""
        ...


class LocalArtifactStore:
    """Filesystem implementation of the ArtifactStore protocol.

    Keys map to paths under ``root``.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()

    def _resolve(self, key: str) -> Path:
        target = (self.root / key.lstrip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return target

    async def get(self, key: str) -> bytes:
        target = self._resolve(key)
        if not target.is_file():
            raise ArtifactNotFoundError(key)
        async with aiofiles.open(target, "rb") as f:
            data: bytes = await f.read()
        return data

    async def put(self, key: str, data: bytes) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        logger.debug(f"Stored {len(data)} bytes at {key}")


class S3ArtifactStore:
    """S3 implementation of the ArtifactStore protocol."""

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        endpoint_url: str | None = None,
    ):
        """Initializes the S3ArtifactStore backend.

        Args:
            bucket: The S3 bucket name.
            region: Optional AWS region name.
            access_key: Optional AWS access key ID.
            secret_key: Optional AWS secret access key.
            endpoint_url: Optional endpoint URL for S3-compatible services (e.g., MinIO or
                the BaaS storage gateway).
        """
        self.bucket = bucket
        self.client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            endpoint_url=endpoint_url,
        )

    async def get(self, key: str) -> bytes:
        """Downloads an object.

        Raises:
            ArtifactNotFoundError: If the key does not exist.
            ClientError: For any other S3 failure.
        """

        def _download() -> bytes:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body: bytes = response["Body"].read()
            return body

        try:
            return await anyio.to_thread.run_sync(_download)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise ArtifactNotFoundError(key) from e
            logger.error(f"Failed to download s3://{self.bucket}/{key}: {e}")
            raise

    async def put(self, key: str, data: bytes) -> None:
        logger.info(f"Uploading {len(data)} bytes to s3://{self.bucket}/{key}")

        def _upload() -> None:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data)

        try:
            await anyio.to_thread.run_sync(_upload)
        except ClientError as e:
            logger.error(f"Failed to upload file to S3: {e}")
            raise
