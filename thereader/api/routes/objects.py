"""Blob streaming for page images and speech artifacts."""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from thereader.api.dependencies import get_artifact_store
from thereader.core.storage.base import ArtifactStore

router = APIRouter(tags=["objects"])


@router.get("/objects/{key:path}", summary="Stream a stored object")
async def get_object(
    key: str,
    store: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
) -> StreamingResponse:
    stream = await store.stream(key)
    headers = {"Cache-Control": stream.cache_control}
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)
    return StreamingResponse(stream.chunks, media_type=stream.content_type, headers=headers)
