"""Artifact store backed by S3 or an S3-compatible service (e.g. Cloudflare R2)."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError
from botocore.exceptions import ConnectionError as BotoConnectionError

from thereader.core.storage.base import STREAM_CHUNK_SIZE, ArtifactStore
from thereader.utils.exceptions import (
    ArtifactNotFoundError,
    ArtifactStoreError,
    ReaderError,
    TransientError,
)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
TRANSIENT_CODES = {
    "SlowDown",
    "RequestTimeout",
    "ServiceUnavailable",
    "InternalError",
    "Throttling",
}


def classify_s3_error(e: Exception, key: str) -> ReaderError:
    """Map a botocore failure to the reader's error hierarchy."""
    if isinstance(e, ClientError):
        error = e.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
        if code in NOT_FOUND_CODES:
            return ArtifactNotFoundError(f"Artifact {key} not found")
        if code in TRANSIENT_CODES or status >= 500:
            return TransientError(f"S3 temporarily failed for {key}: {code}")
        return ArtifactStoreError(f"S3 rejected {key}: {code}")
    if isinstance(e, BotoConnectionError | ReadTimeoutError):
        return TransientError(f"S3 unreachable for {key}: {e}")
    return ArtifactStoreError(f"S3 failed for {key}: {e}")


class S3ArtifactStore(ArtifactStore):
    """Stores each key as an object in one bucket; boto3 calls run in threads."""

    backend_name = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region_name,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4", retries={"max_attempts": 1}),
        )

    async def _call(self, key: str, method: str, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(
                getattr(self.client, method), Bucket=self.bucket, Key=key, **kwargs
            )
        except (ClientError, BotoCoreError) as e:
            raise classify_s3_error(e, key) from e

    async def _put(self, key: str, data: bytes, content_type: str) -> None:
        await self._call(key, "put_object", Body=data, ContentType=content_type)

    async def _get(self, key: str) -> bytes:
        obj = await self._call(key, "get_object")
        try:
            return await asyncio.to_thread(obj["Body"].read)
        except BotoCoreError as e:
            raise classify_s3_error(e, key) from e

    async def _exists(self, key: str) -> bool:
        try:
            await self._call(key, "head_object")
        except ArtifactNotFoundError:
            return False
        return True

    async def _open_stream(self, key: str) -> tuple[AsyncIterator[bytes], int | None]:
        obj = await self._call(key, "get_object")
        return self._iter_body(obj["Body"], key), obj.get("ContentLength")

    async def _iter_body(self, body: Any, key: str) -> AsyncIterator[bytes]:
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(body.read, STREAM_CHUNK_SIZE)
                except BotoCoreError as e:
                    raise classify_s3_error(e, key) from e
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def _delete(self, key: str) -> None:
        await self._call(key, "delete_object")
