"""Artifact storage for page images and speech artifacts."""

from functools import lru_cache

from thereader.config import settings
from thereader.core.storage.base import (
    ArtifactStore,
    ArtifactStream,
    key_from_uri,
    uri_for,
)
from thereader.core.storage.local_store import LocalArtifactStore
from thereader.core.storage.s3_store import S3ArtifactStore


@lru_cache(maxsize=1)
def get_artifact_store() -> ArtifactStore:
    """Build the configured artifact store once per process."""
    if settings.storage_backend == "s3":
        return S3ArtifactStore(
            settings.s3_bucket or "",
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            access_key_id=(
                settings.s3_access_key_id.get_secret_value()
                if settings.s3_access_key_id
                else None
            ),
            secret_access_key=(
                settings.s3_secret_access_key.get_secret_value()
                if settings.s3_secret_access_key
                else None
            ),
        )
    return LocalArtifactStore(settings.storage_dir)


__all__ = [
    "ArtifactStore",
    "ArtifactStream",
    "LocalArtifactStore",
    "S3ArtifactStore",
    "get_artifact_store",
    "key_from_uri",
    "uri_for",
]
