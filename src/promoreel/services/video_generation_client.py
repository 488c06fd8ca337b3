# src/promoreel/services/video_generation_client.py

"""
Submission of video generation requests to Vertex AI (Veo).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from opentelemetry import trace

from promoreel.errors import TransportError
from promoreel.services import transfer_codec

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_ASPECT_RATIO = "9:16"
# Veo renders portrait or landscape only
ASPECT_RATIO_OVERRIDES = {"1:1": "9:16"}
DEFAULT_PROMPT = "Create an engaging product video"


@dataclass(frozen=True)
class ReferenceImage:
    data: bytes
    mime_type: str

    def to_instance(self) -> dict:
        return {
            "image": {
                "bytesBase64Encoded": transfer_codec.encode(self.data),
                "mimeType": self.mime_type,
            },
            "referenceType": "asset",
        }


def normalize_aspect_ratio(aspect_ratio: str | None) -> str:
    ratio = aspect_ratio or DEFAULT_ASPECT_RATIO
    return ASPECT_RATIO_OVERRIDES.get(ratio, ratio)


def image_mime_type(content_type: str | None) -> str:
    content_type = (content_type or "").lower()
    if "jpeg" in content_type or "jpg" in content_type:
        return "image/jpeg"
    return "image/png"


class VideoGenerationClient:
    def __init__(
        self,
        project_id: str,
        location: str = "us-central1",
        model: str = "veo-3.1-fast-generate-preview",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_id = project_id
        self.location = location
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project_id}"
            f"/locations/{self.location}/publishers/google/models/{self.model}:predictLongRunning"
        )

    def build_request(
        self,
        prompt: str | None,
        images: list[ReferenceImage],
        duration_seconds: int,
        aspect_ratio: str | None,
    ) -> dict:
        return {
            "instances": [
                {
                    "prompt": prompt or DEFAULT_PROMPT,
                    "referenceImages": [image.to_instance() for image in images],
                }
            ],
            "parameters": {
                "durationSeconds": duration_seconds,
                "aspectRatio": normalize_aspect_ratio(aspect_ratio),
                "personGeneration": "allow_adult",
                "generateAudio": False,
            },
        }

    async def fetch_reference_image(self, url: str) -> ReferenceImage:
        """Download a product image to send inline with the request."""
        url = url.strip()
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, follow_redirects=True)
            except httpx.HTTPError as e:
                raise TransportError(f"Failed to fetch source image {url}: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Failed to fetch source image {url}",
                status_code=response.status_code,
                body=response.text,
            )
        return ReferenceImage(data=response.content, mime_type=image_mime_type(response.headers.get("content-type")))

    async def submit(
        self,
        access_token: str,
        prompt: str | None,
        images: list[ReferenceImage],
        duration_seconds: int,
        aspect_ratio: str | None = None,
    ) -> str:
        """
        Start a long-running generation.

        Returns:
            The operation name used for later status checks
        """
        payload = self.build_request(prompt, images, duration_seconds, aspect_ratio)

        with tracer.start_as_current_span("vertex.predict_long_running") as span:
            span.set_attribute("vertex.model", self.model)
            span.set_attribute("vertex.reference_images", len(images))
            span.set_attribute("video.duration_seconds", duration_seconds)

            logger.info(
                "Submitting generation: model=%s images=%d duration=%ss",
                self.model,
                len(images),
                duration_seconds,
            )

            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                try:
                    response = await client.post(
                        self.endpoint,
                        json=payload,
                        headers={"Authorization": f"Bearer {access_token}"},
                    )
                except httpx.HTTPError as e:
                    logger.exception("HTTP error submitting generation")
                    raise TransportError(f"Failed to submit generation: {e}") from e

            if not response.is_success:
                logger.error("Veo API error (HTTP %s): %s", response.status_code, response.text[:200])
                raise TransportError(
                    "Failed to submit generation",
                    status_code=response.status_code,
                    body=response.text,
                )

            result = response.json()
            if result.get("error"):
                message = result["error"].get("message") or "Video generation failed"
                raise TransportError(message, status_code=response.status_code)

            operation_name = result.get("name")
            if not operation_name:
                raise TransportError("No operation name returned from Veo API", status_code=response.status_code)

            span.set_attribute("vertex.operation", operation_name)
            return operation_name
