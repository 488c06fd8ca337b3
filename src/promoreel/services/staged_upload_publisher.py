# src/promoreel/services/staged_upload_publisher.py

"""
Shopify Admin GraphQL client for staged video uploads.

Publishing a video to a product takes three calls:
  1. stagedUploadsCreate  -> one-time upload URL + form parameters
  2. multipart POST of those parameters plus the file to that URL
  3. productCreateMedia   -> attaches the staged resource to the product
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from opentelemetry import trace

from promoreel.errors import PartialFailureError, TransferError, TransportError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      resourceUrl
      url
      parameters {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

PRODUCT_CREATE_MEDIA = """
mutation productCreateMedia($media: [CreateMediaInput!]!, $productId: ID!) {
  productCreateMedia(media: $media, productId: $productId) {
    media {
      ... on Video {
        id
        sources {
          url
        }
      }
    }
    mediaUserErrors {
      field
      message
    }
  }
}
"""


@dataclass(frozen=True)
class StagedTarget:
    url: str
    resource_url: str
    parameters: list[tuple[str, str]] = field(default_factory=list)


def product_gid(product_id: str) -> str:
    if str(product_id).startswith("gid://"):
        return str(product_id)
    return f"gid://shopify/Product/{product_id}"


class ShopifyGraphQLClient:
    """Token-authenticated POSTs to a shop's Admin GraphQL endpoint."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-10",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.shop_domain = shop_domain
        self.access_token = access_token
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def execute(self, query: str, variables: dict) -> dict:
        """
        Run one GraphQL operation and return the decoded body.

        Top-level `errors` are not inspected here; callers decide whether a
        partial response is acceptable.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    self.endpoint,
                    json={"query": query, "variables": variables},
                    headers={"X-Shopify-Access-Token": self.access_token},
                )
            except httpx.HTTPError as e:
                raise TransportError(f"Shopify request to {self.shop_domain} failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Shopify GraphQL returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Shopify GraphQL returned a non-JSON body", status_code=response.status_code) from e


class StagedUploadPublisher:
    def __init__(self, graphql: ShopifyGraphQLClient, transport: httpx.AsyncBaseTransport | None = None):
        self.graphql = graphql
        self._transport = transport

    async def stage(self, filename: str, file_size: int, mime_type: str = "video/mp4") -> StagedTarget:
        with tracer.start_as_current_span("shopify.staged_uploads_create") as span:
            span.set_attribute("file.size", file_size)

            body = await self.graphql.execute(
                STAGED_UPLOADS_CREATE,
                {
                    "input": [
                        {
                            "filename": filename,
                            "mimeType": mime_type,
                            "resource": "VIDEO",
                            "fileSize": str(file_size),
                            "httpMethod": "POST",
                        }
                    ]
                },
            )

            result = (body.get("data") or {}).get("stagedUploadsCreate") or {}
            errors = body.get("errors") or result.get("userErrors") or []
            if errors:
                logger.error("Staged upload errors: %s", errors)
                raise PartialFailureError(f"Staged upload failed: {errors}", errors)

            targets = result.get("stagedTargets") or []
            if not targets:
                raise PartialFailureError("Staged upload returned no targets", [])

            target = targets[0]
            staged = StagedTarget(
                url=target["url"],
                resource_url=target["resourceUrl"],
                parameters=[(p["name"], p["value"]) for p in target.get("parameters") or []],
            )
            logger.info("Staged upload target created for %s (%d parameters)", filename, len(staged.parameters))
            return staged

    async def transfer(self, target: StagedTarget, data: bytes, filename: str, mime_type: str = "video/mp4") -> None:
        """
        POST the staged form parameters, in order, followed by the file.

        Upload URLs are single-use, so a failure is not retried.
        """
        with tracer.start_as_current_span("shopify.staged_upload_transfer") as span:
            span.set_attribute("file.size", len(data))

            # Filename-less parts are plain form fields; order and repeated names are kept
            fields = [(name, (None, value)) for name, value in target.parameters]
            fields.append(("file", (filename, data, mime_type)))

            async with httpx.AsyncClient(timeout=self.graphql.timeout, transport=self._transport) as client:
                try:
                    response = await client.post(target.url, files=fields)
                except httpx.HTTPError as e:
                    logger.exception("HTTP error uploading to staged target")
                    raise TransferError(f"Failed to upload video: {e}") from e

            if not response.is_success:
                logger.error("Staged upload POST failed (HTTP %s): %s", response.status_code, response.text[:200])
                raise TransferError(
                    "Failed to upload video",
                    status_code=response.status_code,
                    body=response.text,
                )
            logger.info("Video uploaded to staged URL (%d bytes)", len(data))

    async def attach(self, product_id: str, resource_url: str) -> str:
        """
        Link the staged resource to the product.

        Returns:
            Shopify media GID
        """
        with tracer.start_as_current_span("shopify.product_create_media") as span:
            span.set_attribute("shopify.product", product_gid(product_id))

            body = await self.graphql.execute(
                PRODUCT_CREATE_MEDIA,
                {
                    "productId": product_gid(product_id),
                    "media": [{"originalSource": resource_url, "mediaContentType": "VIDEO"}],
                },
            )

            result = (body.get("data") or {}).get("productCreateMedia") or {}
            errors = body.get("errors") or result.get("mediaUserErrors") or []
            if errors:
                logger.error("Create media errors: %s", errors)
                raise PartialFailureError(f"Failed to attach video to product: {errors}", errors)

            media = result.get("media") or []
            media_ref = media[0].get("id") if media and media[0] else None
            if not media_ref:
                raise PartialFailureError("No video ID returned from Shopify", [])

            span.set_attribute("shopify.media", media_ref)
            logger.info("Video attached to product %s as %s", product_id, media_ref)
            return media_ref

    async def publish(self, product_id: str, data: bytes, filename: str, mime_type: str = "video/mp4") -> str:
        """Stage, transfer and attach. Returns the media GID."""
        target = await self.stage(filename, len(data), mime_type)
        await self.transfer(target, data, filename, mime_type)
        return await self.attach(product_id, target.resource_url)
