"""
GenerationJob model: one product video, from AI submission to storefront publish.
"""

import enum

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime
from sqlalchemy.orm import relationship

from promoreel.db.database import Base
from promoreel.models.base_model import uuid_pk, uuid_fk
from promoreel.models.mixins import TimestampMixin


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


IN_FLIGHT_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)
TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


class GenerationJob(Base, TimestampMixin):
    """
    Persisted record of a video generation request.

    `status` moves pending -> processing -> completed|failed and never leaves
    a terminal state. `published` is orthogonal and only set from completed.
    """
    __tablename__ = "generated_videos"

    id = uuid_pk()
    store_id = uuid_fk("stores", nullable=False)
    product_id = Column(String, nullable=False)

    prompt = Column(Text, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    aspect_ratio = Column(String(8), nullable=True)

    operation_ref = Column(String, nullable=True, unique=True)
    model_name = Column(String, nullable=True)

    status = Column(String, nullable=False, default=JobStatus.PENDING.value, index=True)
    media_url = Column(String, nullable=True)
    media_ref = Column(String, nullable=True)
    error_detail = Column(Text, nullable=True)

    published = Column(Boolean, nullable=False, default=False)
    stored = Column(Boolean, nullable=False, default=False)

    generation_started_at = Column(DateTime(timezone=True), nullable=True)
    generation_completed_at = Column(DateTime(timezone=True), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    store = relationship("Store", back_populates="generation_jobs")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<GenerationJob(id={self.id}, status={self.status}, published={self.published})>"
