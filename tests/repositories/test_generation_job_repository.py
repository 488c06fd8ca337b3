import uuid
from unittest.mock import MagicMock

from promoreel.models.generation_job import GenerationJob, JobStatus
from promoreel.repositories.generation_job_repository import GenerationJobRepository
from promoreel.repositories.store_repository import StoreRepository


def test_create_generation_job_commits():
    fake_db = MagicMock()

    job = GenerationJobRepository.create(
        fake_db,
        store_id=uuid.uuid4(),
        product_id="8123456789",
        operation_ref="projects/p/locations/l/publishers/google/models/m/operations/1",
    )

    fake_db.add.assert_called_once_with(job)
    fake_db.commit.assert_called_once()
    fake_db.refresh.assert_called_once_with(job)
    assert job.status == "pending"
    assert job.published is False
    assert job.generation_started_at is not None


def test_create_honours_explicit_id(db, store):
    job_id = uuid.uuid4()

    job = GenerationJobRepository.create(db, store_id=store.id, product_id="1", operation_ref="ops/x", job_id=job_id)

    assert job.id == job_id


def test_get_by_id_scoped_to_store(db, make_job, store):
    job = make_job()

    assert GenerationJobRepository.get_by_id(db, job.id).id == job.id
    assert GenerationJobRepository.get_by_id(db, job.id, store_id=store.id).id == job.id
    assert GenerationJobRepository.get_by_id(db, job.id, store_id=uuid.uuid4()) is None


def test_list_in_flight_excludes_terminal_jobs(db, make_job):
    pending = make_job(operation_ref="ops/1")
    processing = make_job(operation_ref="ops/2", status=JobStatus.PROCESSING.value)
    make_job(operation_ref="ops/3", status=JobStatus.COMPLETED.value)
    make_job(operation_ref="ops/4", status=JobStatus.FAILED.value)

    ids = {job.id for job in GenerationJobRepository.list_in_flight(db)}

    assert ids == {pending.id, processing.id}


def test_mark_failed_only_applies_to_in_flight_jobs(db, make_job):
    job = make_job()

    assert GenerationJobRepository.mark_failed(db, job.id, "boom") is True
    assert GenerationJobRepository.mark_failed(db, job.id, "second") is False

    db.refresh(job)
    assert job.status == "failed"
    assert job.error_detail == "boom"


def test_mark_completed_never_leaves_terminal_state(db, make_job):
    job = make_job(status=JobStatus.FAILED.value, error_detail="boom")

    assert GenerationJobRepository.mark_completed(db, job.id, "https://cdn/x.mp4", retention_days=7) is False

    db.refresh(job)
    assert job.status == "failed"
    assert job.media_url is None


def test_mark_completed_sets_retention(db, make_job):
    job = make_job()

    assert GenerationJobRepository.mark_completed(db, job.id, "https://cdn/x.mp4", retention_days=7) is True

    db.refresh(job)
    assert job.status == "completed"
    assert job.stored is True
    assert job.expires_at is not None
    assert job.generation_completed_at is not None


def test_mark_published_is_at_most_once(db, make_job):
    job = make_job(status=JobStatus.COMPLETED.value)

    assert GenerationJobRepository.mark_published(db, job.id, "gid://shopify/Video/1", "https://a") is True
    assert GenerationJobRepository.mark_published(db, job.id, "gid://shopify/Video/2", "https://b") is False

    db.refresh(job)
    assert job.published is True
    assert job.media_ref == "gid://shopify/Video/1"
    assert job.media_url == "https://a"


def test_mark_published_requires_completed(db, make_job):
    job = make_job(status=JobStatus.PROCESSING.value)

    assert GenerationJobRepository.mark_published(db, job.id, "gid://shopify/Video/1", "https://a") is False


def test_mark_storage_purged(db, make_job):
    job = make_job(status=JobStatus.COMPLETED.value, stored=True)

    assert GenerationJobRepository.mark_storage_purged(db, job.id) is True
    assert GenerationJobRepository.mark_storage_purged(db, job.id) is False


def test_store_lookup(db, store):
    assert StoreRepository.get_by_id(db, store.id).shop_domain == "test-shop.myshopify.com"
    assert StoreRepository.get_by_id(db, uuid.uuid4()) is None


def test_model_terminal_flag():
    assert GenerationJob(status="completed").is_terminal is True
    assert GenerationJob(status="processing").is_terminal is False
