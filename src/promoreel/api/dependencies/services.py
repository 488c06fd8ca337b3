from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from promoreel.config import Settings, get_settings
from promoreel.db.database import get_db
from promoreel.services.generation_pipeline import GenerationPipeline, build_pipeline
from promoreel.services.media_store import MediaStore


def get_store_id(x_store_id: Optional[str] = Header(None)) -> UUID:
    """
    Extract the calling store from the X-Store-ID header.
    Required for routes that act on a store's products.
    """
    if not x_store_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Store-ID header is required",
        )
    try:
        return UUID(x_store_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Store-ID header must be a UUID",
        )


def get_pipeline(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> GenerationPipeline:
    return build_pipeline(db, settings)


def get_media_store(settings: Settings = Depends(get_settings)) -> MediaStore:
    return MediaStore(
        bucket=settings.media_bucket,
        region=settings.aws_region,
        public_base_url=settings.media_public_base_url,
    )
