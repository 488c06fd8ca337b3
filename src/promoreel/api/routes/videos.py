# src/promoreel/api/routes/videos.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from opentelemetry import trace

from promoreel.api.dependencies.services import get_media_store, get_pipeline, get_store_id
from promoreel.db.database import get_db
from promoreel.errors import (
    AlreadyPublishedError,
    AuthError,
    InvalidRangeError,
    MalformedReferenceError,
    NotFoundError,
    NotReadyError,
    ReadinessTimeoutError,
    TransportError,
)
from promoreel.repositories.generation_job_repository import GenerationJobRepository
from promoreel.services.generation_pipeline import GenerationPipeline
from promoreel.services.media_store import MediaStore, VIDEO_CONTENT_TYPE
from promoreel.utils.http_range import parse_range_header
from promoreel.utils.storage_paths import build_video_key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

router = APIRouter(prefix="/videos", tags=["Videos"])

STREAM_CACHE_CONTROL = "public, max-age=31536000"


class VideoCreate(BaseModel):
    product_id: str
    image_urls: list[str] = Field(min_length=1)
    prompt: Optional[str] = None
    duration_seconds: int = Field(default=8, ge=4, le=8)
    aspect_ratio: Optional[str] = None


class VideoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    product_id: str
    status: str
    operation_ref: Optional[str] = None
    media_url: Optional[str] = None
    media_ref: Optional[str] = None
    error_detail: Optional[str] = None
    published: bool
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class StatusOut(BaseModel):
    status: str
    media_url: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


class PublishOut(BaseModel):
    success: bool = True
    media_ref: str
    media_url: str


def to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (AlreadyPublishedError, NotReadyError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, MalformedReferenceError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, InvalidRangeError):
        headers = {"Content-Range": f"bytes */{e.total_size}"} if e.total_size is not None else None
        return HTTPException(status_code=416, detail=str(e), headers=headers)
    return HTTPException(status_code=502, detail=str(e))


@router.post("", response_model=VideoOut, status_code=201)
async def create_video(
    payload: VideoCreate,
    store_id: UUID = Depends(get_store_id),
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    logger.info("Video generation requested store=%s product=%s", store_id, payload.product_id)
    try:
        job = await pipeline.submit(
            store_id=store_id,
            product_id=payload.product_id,
            image_urls=payload.image_urls,
            prompt=payload.prompt,
            duration_seconds=payload.duration_seconds,
            aspect_ratio=payload.aspect_ratio,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (NotFoundError, AuthError, TransportError) as e:
        raise to_http_error(e)
    return job


@router.get("/{video_id}", response_model=VideoOut)
def get_video(video_id: UUID, db: Session = Depends(get_db)):
    job = GenerationJobRepository.get_by_id(db, video_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Video not found")
    return job


@router.post("/{video_id}/status", response_model=StatusOut)
async def check_video_status(video_id: UUID, pipeline: GenerationPipeline = Depends(get_pipeline)):
    try:
        result = await pipeline.check_status(video_id)
    except (NotFoundError, AuthError, TransportError) as e:
        raise to_http_error(e)

    message = "Video already processed" if result.cached else None
    return StatusOut(status=result.status, media_url=result.media_url, error=result.error, message=message)


@router.post("/{video_id}/publish", response_model=PublishOut)
async def publish_video(
    video_id: UUID,
    store_id: UUID = Depends(get_store_id),
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    try:
        result = await pipeline.publish(video_id, store_id=store_id)
    except (
        NotFoundError,
        AlreadyPublishedError,
        NotReadyError,
        AuthError,
        TransportError,
        ReadinessTimeoutError,
    ) as e:
        logger.warning("Publish of %s rejected: %s", video_id, e)
        raise to_http_error(e)
    return PublishOut(media_ref=result.media_ref, media_url=result.media_url)


@router.get("/{video_id}/stream")
def stream_video(
    video_id: UUID,
    range_header: Optional[str] = Header(None, alias="Range"),
    media_store: MediaStore = Depends(get_media_store),
):
    """
    Serve the stored video for playback, honouring single byte ranges.
    """
    key = build_video_key(video_id)
    with tracer.start_as_current_span("videos.stream") as span:
        span.set_attribute("s3.key", key)
        try:
            if range_header:
                start, end = parse_range_header(range_header)
                chunk = media_store.get_range_slice(key, start, end)
                return Response(
                    content=chunk.data,
                    status_code=206,
                    media_type=VIDEO_CONTENT_TYPE,
                    headers={
                        "Content-Range": chunk.content_range,
                        "Accept-Ranges": "bytes",
                        "Cache-Control": STREAM_CACHE_CONTROL,
                    },
                )

            data = media_store.get(key)
        except (NotFoundError, InvalidRangeError, TransportError) as e:
            raise to_http_error(e)

    return Response(
        content=data,
        status_code=200,
        media_type=VIDEO_CONTENT_TYPE,
        headers={
            "Accept-Ranges": "bytes",
            "Cache-Control": STREAM_CACHE_CONTROL,
        },
    )
