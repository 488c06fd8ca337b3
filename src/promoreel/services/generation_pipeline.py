# src/promoreel/services/generation_pipeline.py

"""
Generation pipeline: submit -> poll -> store -> publish -> cleanup.

Every entry point takes a job id, re-reads the persisted record and
applies its transition with a conditional update, so the same job may be
driven by duplicate or concurrent triggers without double side effects.
Jobs for different ids share nothing and can run in parallel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session
from opentelemetry import trace

from promoreel import metrics
from promoreel.errors import (
    AlreadyPublishedError,
    MalformedReferenceError,
    NotFoundError,
    NotReadyError,
    PromoreelError,
    TransportError,
)
from promoreel.models.generation_job import GenerationJob, JobStatus
from promoreel.models.store import Store
from promoreel.repositories.generation_job_repository import GenerationJobRepository
from promoreel.repositories.store_repository import StoreRepository
from promoreel.services import transfer_codec
from promoreel.services.job_status_client import JobStatusClient
from promoreel.services.media_readiness_poller import MediaReadinessPoller
from promoreel.services.media_store import MediaStore, VIDEO_CONTENT_TYPE
from promoreel.services.staged_upload_publisher import ShopifyGraphQLClient, StagedUploadPublisher
from promoreel.services.token_signer import DeferredTokenSigner, TokenSigner
from promoreel.services.video_generation_client import VideoGenerationClient
from promoreel.utils.storage_paths import build_video_filename, build_video_key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class StatusResult:
    status: str
    media_url: Optional[str] = None
    error: Optional[str] = None
    # True when the persisted record was already terminal and nothing was queried
    cached: bool = False


@dataclass(frozen=True)
class PublishResult:
    media_ref: str
    media_url: str


class CommerceClientFactory:
    """Builds per-store Shopify publisher and poller from the store's credentials."""

    def __init__(
        self,
        api_version: str = "2024-10",
        readiness_max_attempts: int = 30,
        readiness_interval_seconds: float = 2.0,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_version = api_version
        self.readiness_max_attempts = readiness_max_attempts
        self.readiness_interval_seconds = readiness_interval_seconds
        self.timeout = timeout
        self._transport = transport

    def __call__(self, store: Store) -> tuple[StagedUploadPublisher, MediaReadinessPoller]:
        graphql = ShopifyGraphQLClient(
            shop_domain=store.shop_domain,
            access_token=store.access_token,
            api_version=self.api_version,
            timeout=self.timeout,
            transport=self._transport,
        )
        publisher = StagedUploadPublisher(graphql, transport=self._transport)
        poller = MediaReadinessPoller(
            graphql,
            max_attempts=self.readiness_max_attempts,
            interval_seconds=self.readiness_interval_seconds,
        )
        return publisher, poller


class GenerationPipeline:
    def __init__(
        self,
        db: Session,
        token_signer: TokenSigner | DeferredTokenSigner,
        status_client: JobStatusClient,
        media_store: MediaStore,
        commerce_factory: Callable[[Store], tuple[StagedUploadPublisher, MediaReadinessPoller]],
        generation_client: VideoGenerationClient | None = None,
        retention_days: int = 7,
    ):
        self.db = db
        self.token_signer = token_signer
        self.status_client = status_client
        self.media_store = media_store
        self.commerce_factory = commerce_factory
        self.generation_client = generation_client
        self.retention_days = retention_days

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------
    async def submit(
        self,
        *,
        store_id: UUID,
        product_id: str,
        image_urls: list[str],
        prompt: str | None = None,
        duration_seconds: int = 8,
        aspect_ratio: str | None = None,
    ) -> GenerationJob:
        """
        Send a generation request to the AI platform and record the job.

        The job row is only written once the platform has accepted the
        request, so every persisted job carries its operation reference.
        """
        if self.generation_client is None:
            raise RuntimeError("Pipeline was built without a generation client")
        if not image_urls:
            raise ValueError("At least one reference image is required")

        with tracer.start_as_current_span("pipeline.submit") as span:
            span.set_attribute("store.id", str(store_id))
            span.set_attribute("product.id", product_id)

            if StoreRepository.get_by_id(self.db, store_id) is None:
                raise NotFoundError(f"Store {store_id} not found")

            images = [await self.generation_client.fetch_reference_image(url) for url in image_urls]
            access_token = await self.token_signer.fetch_access_token()
            operation_ref = await self.generation_client.submit(
                access_token,
                prompt=prompt,
                images=images,
                duration_seconds=duration_seconds,
                aspect_ratio=aspect_ratio,
            )

            job = GenerationJobRepository.create(
                self.db,
                store_id=store_id,
                product_id=product_id,
                operation_ref=operation_ref,
                model_name=self.generation_client.model,
                prompt=prompt,
                duration_seconds=duration_seconds,
                aspect_ratio=aspect_ratio,
            )
            metrics.generation_submitted_total.inc()
            span.set_attribute("job.id", str(job.id))
            return job

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    async def check_status(self, job_id: UUID) -> StatusResult:
        """
        Check one in-flight job against the AI platform.

        Terminal jobs return their persisted state without any platform call.
        Generation failures are written to the job record; auth and
        transport failures propagate and leave the job untouched.
        """
        with tracer.start_as_current_span("pipeline.check_status") as span:
            span.set_attribute("job.id", str(job_id))

            job = self._load(job_id)
            if job.is_terminal:
                logger.info("Job %s already %s, skipping status check", job_id, job.status)
                return self._result_from(job, cached=True)

            try:
                access_token = await self.token_signer.fetch_access_token()
                status = await self.status_client.check(job.operation_ref, access_token)
            except MalformedReferenceError as e:
                return self._fail(job, str(e))

            if not status.done:
                metrics.status_checks_total.labels(outcome="processing").inc()
                return StatusResult(status=JobStatus.PROCESSING.value)

            if status.error:
                logger.error("Job %s completed with error: %s", job_id, status.error)
                return self._fail(job, status.error)

            if not status.payload:
                logger.error("Job %s: no video data in completed response", job_id)
                return self._fail(job, "No video data in response")

            return self._complete(job, status.payload)

    def _complete(self, job: GenerationJob, payload: str) -> StatusResult:
        try:
            video = transfer_codec.decode(payload)
        except ValueError as e:
            return self._fail(job, f"Invalid video data in response: {e}")

        key = build_video_key(job.id)
        try:
            self.media_store.put(key, video, content_type=VIDEO_CONTENT_TYPE)
        except TransportError as e:
            return self._fail(job, f"Failed to save video: {e}")

        media_url = self.media_store.public_url(key)
        if GenerationJobRepository.mark_completed(self.db, job.id, media_url, self.retention_days):
            metrics.generation_completed_total.inc()
            metrics.status_checks_total.labels(outcome="completed").inc()
            logger.info("Job %s completed: %d bytes stored at %s", job.id, len(video), key)
        else:
            logger.info("Job %s was finalized concurrently; keeping persisted state", job.id)

        self.db.refresh(job)
        return self._result_from(job)

    def _fail(self, job: GenerationJob, error_detail: str) -> StatusResult:
        if GenerationJobRepository.mark_failed(self.db, job.id, error_detail):
            metrics.generation_failed_total.inc()
            metrics.status_checks_total.labels(outcome="failed").inc()
        self.db.refresh(job)
        return self._result_from(job)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------
    async def publish(self, job_id: UUID, store_id: UUID | None = None) -> PublishResult:
        """
        Upload the stored video to the job's product and wait for Shopify to
        expose a playback URL.

        Failures propagate without touching `published`, so the call can be
        retried. After the record is marked published the storage copy is
        removed on a best-effort basis.
        """
        with tracer.start_as_current_span("pipeline.publish") as span:
            span.set_attribute("job.id", str(job_id))

            job = self._load(job_id, store_id)
            if job.published:
                raise AlreadyPublishedError(f"Video {job_id} already published to product")
            if job.status != JobStatus.COMPLETED.value:
                raise NotReadyError(f"Video {job_id} is {job.status}, not completed")

            store = StoreRepository.get_by_id(self.db, job.store_id)
            if store is None:
                raise NotFoundError(f"Store {job.store_id} not found")

            key = build_video_key(job.id)
            try:
                video = self.media_store.get(key)
                publisher, poller = self.commerce_factory(store)
                media_ref = await publisher.publish(job.product_id, video, build_video_filename(job.id))
                media_url = await poller.wait_for_url(media_ref)
            except PromoreelError:
                metrics.publish_failures_total.inc()
                raise

            if not GenerationJobRepository.mark_published(self.db, job.id, media_ref, media_url):
                metrics.publish_failures_total.inc()
                logger.warning(
                    "Job %s was published concurrently; media %s is a duplicate attachment",
                    job.id,
                    media_ref,
                )
                raise AlreadyPublishedError(f"Video {job_id} already published to product")

            metrics.publish_total.inc()
            span.set_attribute("shopify.media", media_ref)
            self._purge_storage(job.id, key)
            return PublishResult(media_ref=media_ref, media_url=media_url)

    def _purge_storage(self, job_id: UUID, key: str) -> None:
        try:
            self.media_store.delete(key)
            GenerationJobRepository.mark_storage_purged(self.db, job_id)
        except Exception:
            # The publish is already durable; a leftover object only costs storage
            self.db.rollback()
            metrics.storage_cleanup_failures_total.inc()
            logger.exception("Failed to delete %s after publishing job %s", key, job_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load(self, job_id: UUID, store_id: UUID | None = None) -> GenerationJob:
        job = GenerationJobRepository.get_by_id(self.db, job_id, store_id)
        if job is None:
            raise NotFoundError(f"Video {job_id} not found")
        return job

    @staticmethod
    def _result_from(job: GenerationJob, cached: bool = False) -> StatusResult:
        return StatusResult(
            status=job.status,
            media_url=job.media_url,
            error=job.error_detail,
            cached=cached,
        )


def build_pipeline(db: Session, settings) -> GenerationPipeline:
    """Wire a pipeline from application settings."""
    generation_client = None
    if settings.gcp_project_id:
        generation_client = VideoGenerationClient(
            project_id=settings.gcp_project_id,
            location=settings.gcp_location,
            model=settings.veo_model,
            timeout=settings.http_timeout_seconds,
        )

    return GenerationPipeline(
        db=db,
        token_signer=DeferredTokenSigner(
            settings.gcp_service_account_json,
            timeout=settings.http_timeout_seconds,
        ),
        status_client=JobStatusClient(timeout=settings.http_timeout_seconds),
        media_store=MediaStore(
            bucket=settings.media_bucket,
            region=settings.aws_region,
            public_base_url=settings.media_public_base_url,
        ),
        commerce_factory=CommerceClientFactory(
            api_version=settings.shopify_api_version,
            readiness_max_attempts=settings.readiness_max_attempts,
            readiness_interval_seconds=settings.readiness_interval_seconds,
            timeout=settings.http_timeout_seconds,
        ),
        generation_client=generation_client,
        retention_days=settings.media_retention_days,
    )


async def poll_in_flight_jobs(pipeline: GenerationPipeline, limit: int = 100) -> dict:
    """
    Check every in-flight job once.

    Returns summary of results:
    {
        "total": 10,
        "processing": 6,
        "completed": 2,
        "failed": 1,
        "errors": 1
    }
    """
    jobs = GenerationJobRepository.list_in_flight(pipeline.db, limit=limit)
    results = {"total": len(jobs), "processing": 0, "completed": 0, "failed": 0, "errors": 0}

    for job_id in [job.id for job in jobs]:
        try:
            outcome = await pipeline.check_status(job_id)
        except PromoreelError as e:
            # Job stays in flight; the next run checks it again
            logger.error("Status check for job %s failed: %s", job_id, e)
            results["errors"] += 1
            continue
        results[outcome.status] = results.get(outcome.status, 0) + 1

    logger.info("Status poll complete: %s", results)
    return results
