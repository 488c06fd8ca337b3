# src/promoreel/services/job_status_client.py

"""
Status queries for long-running Vertex AI video generation operations.
"""

from __future__ import annotations

import re
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from opentelemetry import trace

from promoreel.errors import MalformedReferenceError, TransportError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

OPERATION_PATTERN = re.compile(
    r"projects/(?P<project>[^/]+)/locations/(?P<location>[^/]+)"
    r"/publishers/google/models/(?P<model>[^/]+)"
)


@dataclass(frozen=True)
class OperationRef:
    project: str
    location: str
    model: str
    name: str

    @property
    def fetch_url(self) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project}"
            f"/locations/{self.location}/publishers/google/models/{self.model}:fetchPredictOperation"
        )


@dataclass(frozen=True)
class OperationStatus:
    """
    One observation of a generation operation.

    Exactly one of the three shapes:
      done=False                      still running
      done=True, error=<message>      terminal failure
      done=True, payload=<base64>     terminal success
    `payload` may be None on a done, error-free response when the platform
    returned no video; callers treat that as a failure.
    """

    done: bool
    error: Optional[str] = None
    payload: Optional[str] = None


def parse_operation_ref(operation_ref: str | None) -> OperationRef:
    if not operation_ref:
        raise MalformedReferenceError("Job has no operation reference")

    match = OPERATION_PATTERN.search(operation_ref)
    if not match:
        logger.error("Could not parse operation reference: %s", operation_ref)
        raise MalformedReferenceError(f"Invalid operation reference: {operation_ref}")

    return OperationRef(
        project=match.group("project"),
        location=match.group("location"),
        model=match.group("model"),
        name=operation_ref,
    )


class JobStatusClient:
    """Issues a single fetchPredictOperation call per check. Never retries."""

    def __init__(self, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    async def check(self, operation_ref: str, access_token: str) -> OperationStatus:
        ref = parse_operation_ref(operation_ref)

        with tracer.start_as_current_span("vertex.fetch_predict_operation") as span:
            span.set_attribute("vertex.model", ref.model)
            span.set_attribute("vertex.location", ref.location)

            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                try:
                    response = await client.post(
                        ref.fetch_url,
                        json={"operationName": ref.name},
                        headers={"Authorization": f"Bearer {access_token}"},
                    )
                except httpx.HTTPError as e:
                    logger.exception("HTTP error checking operation %s", ref.name)
                    raise TransportError(f"Failed to check job status: {e}") from e

            if not response.is_success:
                logger.error("Failed to check job status (HTTP %s): %s", response.status_code, response.text[:200])
                raise TransportError(
                    "Failed to check job status",
                    status_code=response.status_code,
                    body=response.text,
                )

            try:
                body = response.json()
            except ValueError as e:
                raise TransportError("Status endpoint returned a non-JSON body", status_code=response.status_code) from e

            status = self._interpret(body)
            span.set_attribute("vertex.done", status.done)
            logger.info("Operation %s: %s", ref.name, "done" if status.done else "processing")
            return status

    @staticmethod
    def _interpret(body: dict) -> OperationStatus:
        if not body.get("done"):
            return OperationStatus(done=False)

        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            return OperationStatus(done=True, error=message or "Video generation failed")

        videos = (body.get("response") or {}).get("videos") or []
        payload = videos[0].get("bytesBase64Encoded") if videos else None
        return OperationStatus(done=True, payload=payload)
