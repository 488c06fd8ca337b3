# tests/conftest.py
import io
import os
import re
import uuid

# Must be set before promoreel.db.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from unittest.mock import AsyncMock, MagicMock

from botocore.exceptions import ClientError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from promoreel.db.database import Base

# Import models so metadata knows about all tables
import promoreel.models.store
import promoreel.models.generation_job

from promoreel.models.store import Store
from promoreel.repositories.generation_job_repository import GenerationJobRepository
from promoreel.services.job_status_client import OperationStatus
from promoreel.services.media_store import MediaStore


@pytest.fixture(scope="session")
def engine():
    """In-memory SQLite shared by every connection (TestClient runs in another thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clean_db(engine):
    """Reset all tables before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture()
def db(engine):
    """Return a new SQLAlchemy session for each test."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    store = Store(
        id=uuid.uuid4(),
        name="Test Store",
        shop_domain="test-shop.myshopify.com",
        access_token="shpat_test",
    )
    db.add(store)
    db.commit()
    return store


@pytest.fixture
def make_job(db, store):
    """Create a persisted job, optionally forcing its status/flags."""

    def _make(operation_ref="ops/abc", **overrides):
        job = GenerationJobRepository.create(
            db,
            store_id=store.id,
            product_id="8123456789",
            operation_ref=operation_ref,
            model_name="veo-3.1-fast-generate-preview",
            prompt="Spin the sneaker on a turntable",
            duration_seconds=8,
        )
        if overrides:
            for field, value in overrides.items():
                setattr(job, field, value)
            db.commit()
            db.refresh(job)
        return job

    return _make


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

_STATUS_BY_CODE = {"404": 404, "NoSuchKey": 404, "AccessDenied": 403, "InternalError": 500}


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": _STATUS_BY_CODE.get(code, 400)},
        },
        operation,
    )


class FakeS3Client:
    """Dict-backed stand-in for the boto3 S3 client methods MediaStore calls."""

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.fail_put = False
        self.fail_delete = False
        self.fail_get = False

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.calls.append(("put_object", Key))
        if self.fail_put:
            raise _client_error("InternalError", "PutObject")
        self.objects[Key] = bytes(Body)
        return {}

    def head_object(self, Bucket, Key):
        self.calls.append(("head_object", Key))
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.objects[Key])}

    def get_object(self, Bucket, Key, Range=None):
        self.calls.append(("get_object", Key))
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        if self.fail_get:
            raise _client_error("InternalError", "GetObject")
        data = self.objects[Key]
        if Range:
            start, end = (int(x) for x in re.match(r"bytes=(\d+)-(\d+)", Range).groups())
            data = data[start:end + 1]
        return {"Body": io.BytesIO(data), "ContentLength": len(data)}

    def delete_object(self, Bucket, Key):
        self.calls.append(("delete_object", Key))
        if self.fail_delete:
            raise _client_error("AccessDenied", "DeleteObject")
        self.objects.pop(Key, None)
        return {}


class ScriptedStatusClient:
    """Returns queued OperationStatus values and records every check."""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.calls = []

    async def check(self, operation_ref, access_token):
        self.calls.append((operation_ref, access_token))
        return self.statuses.pop(0)


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def media_store(s3_client):
    return MediaStore(
        bucket="test-bucket",
        region="us-east-1",
        public_base_url="https://cdn.example.com",
        client=s3_client,
    )


@pytest.fixture
def token_signer():
    signer = MagicMock()
    signer.fetch_access_token = AsyncMock(return_value="ya29.test-token")
    return signer


@pytest.fixture
def scripted_status_client():
    return ScriptedStatusClient


@pytest.fixture
def pending_status():
    return OperationStatus(done=False)


@pytest.fixture
def anyio_backend():
    """The services are asyncio-native (asyncio.sleep); run async tests on asyncio only."""
    return "asyncio"
