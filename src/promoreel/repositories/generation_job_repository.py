# src/promoreel/repositories/generation_job_repository.py

"""
Persistence for GenerationJob.

Every state transition is a conditional UPDATE against the persisted
status/flag so duplicate or concurrent pipeline invocations cannot move a
job backwards or publish it twice. Transition methods return True only
when this call performed the write.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session
from opentelemetry import trace

from promoreel.models.generation_job import (
    GenerationJob,
    JobStatus,
    IN_FLIGHT_STATUSES,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class GenerationJobRepository:

    @staticmethod
    def create(
        db: Session,
        *,
        store_id: UUID,
        product_id: str,
        operation_ref: str,
        model_name: str | None = None,
        prompt: str | None = None,
        duration_seconds: int | None = None,
        aspect_ratio: str | None = None,
        job_id: UUID | None = None,
    ) -> GenerationJob:
        job = GenerationJob(
            store_id=store_id,
            product_id=product_id,
            operation_ref=operation_ref,
            model_name=model_name,
            prompt=prompt,
            duration_seconds=duration_seconds,
            aspect_ratio=aspect_ratio,
            status=JobStatus.PENDING.value,
            published=False,
            stored=False,
            generation_started_at=datetime.now(timezone.utc),
        )
        if job_id is not None:
            job.id = job_id

        with tracer.start_as_current_span("db.create_generation_job") as span:
            span.set_attribute("store.id", str(store_id))
            span.set_attribute("product.id", product_id)

            db.add(job)
            db.commit()
            db.refresh(job)

        logger.info(
            "Created generation job id=%s store=%s product=%s operation=%s",
            getattr(job, "id", "?"),
            store_id,
            product_id,
            operation_ref,
        )
        return job

    @staticmethod
    def get_by_id(db: Session, job_id: UUID, store_id: UUID | None = None) -> GenerationJob | None:
        with tracer.start_as_current_span("db.get_generation_job") as span:
            span.set_attribute("job.id", str(job_id))

            query = db.query(GenerationJob).filter(GenerationJob.id == job_id)
            if store_id is not None:
                query = query.filter(GenerationJob.store_id == store_id)
            result = query.first()

        logger.debug("Fetched generation job id=%s -> %s", job_id, getattr(result, "status", None))
        return result

    @staticmethod
    def list_in_flight(db: Session, limit: int = 100) -> list[GenerationJob]:
        with tracer.start_as_current_span("db.list_in_flight_jobs"):
            results = (
                db.query(GenerationJob)
                .filter(GenerationJob.status.in_(IN_FLIGHT_STATUSES))
                .order_by(GenerationJob.created_at.asc())
                .limit(limit)
                .all()
            )

        logger.debug("Listed %d in-flight generation jobs", len(results))
        return results

    @staticmethod
    def _conditional_update(db: Session, span_name: str, job_id: UUID, conditions, values: dict) -> bool:
        with tracer.start_as_current_span(span_name) as span:
            span.set_attribute("job.id", str(job_id))

            values = {**values, "updated_at": func.now()}
            rowcount = (
                db.query(GenerationJob)
                .filter(GenerationJob.id == job_id, *conditions)
                .update(values, synchronize_session=False)
            )
            db.commit()
            span.set_attribute("db.rowcount", rowcount)

        return rowcount == 1

    @staticmethod
    def mark_failed(db: Session, job_id: UUID, error_detail: str) -> bool:
        won = GenerationJobRepository._conditional_update(
            db,
            "db.mark_generation_failed",
            job_id,
            [GenerationJob.status.in_(IN_FLIGHT_STATUSES)],
            {
                "status": JobStatus.FAILED.value,
                "error_detail": error_detail,
            },
        )
        logger.info("Job %s -> failed (%s) applied=%s", job_id, error_detail, won)
        return won

    @staticmethod
    def mark_completed(db: Session, job_id: UUID, media_url: str, retention_days: int) -> bool:
        now = datetime.now(timezone.utc)
        won = GenerationJobRepository._conditional_update(
            db,
            "db.mark_generation_completed",
            job_id,
            [GenerationJob.status.in_(IN_FLIGHT_STATUSES)],
            {
                "status": JobStatus.COMPLETED.value,
                "media_url": media_url,
                "stored": True,
                "error_detail": None,
                # A fresh generation invalidates any earlier publish state
                "published": False,
                "media_ref": None,
                "published_at": None,
                "generation_completed_at": now,
                "expires_at": now + timedelta(days=retention_days),
            },
        )
        logger.info("Job %s -> completed applied=%s", job_id, won)
        return won

    @staticmethod
    def mark_published(db: Session, job_id: UUID, media_ref: str, media_url: str) -> bool:
        won = GenerationJobRepository._conditional_update(
            db,
            "db.mark_generation_published",
            job_id,
            [
                GenerationJob.status == JobStatus.COMPLETED.value,
                GenerationJob.published.is_(False),
            ],
            {
                "published": True,
                "media_ref": media_ref,
                "media_url": media_url,
                "published_at": datetime.now(timezone.utc),
            },
        )
        logger.info("Job %s -> published media=%s applied=%s", job_id, media_ref, won)
        return won

    @staticmethod
    def mark_storage_purged(db: Session, job_id: UUID) -> bool:
        return GenerationJobRepository._conditional_update(
            db,
            "db.mark_storage_purged",
            job_id,
            [GenerationJob.stored.is_(True)],
            {"stored": False},
        )
