# src/promoreel/services/media_readiness_poller.py

"""
Waits for Shopify to finish ingesting an attached video.
"""

from __future__ import annotations

import asyncio
import logging

from opentelemetry import trace

from promoreel.errors import ReadinessTimeoutError, TransportError
from promoreel.metrics import readiness_timeouts_total
from promoreel.services.staged_upload_publisher import ShopifyGraphQLClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

VIDEO_SOURCES_QUERY = """
query getVideo($id: ID!) {
  node(id: $id) {
    ... on Video {
      sources {
        url
      }
    }
  }
}
"""


class MediaReadinessPoller:
    """
    Polls `node(id)` until the video exposes a source URL.

    Each attempt sleeps first, since a freshly attached video never has
    sources yet. Failed attempts count toward the ceiling and are not fatal.
    """

    def __init__(self, graphql: ShopifyGraphQLClient, max_attempts: int = 30, interval_seconds: float = 2.0):
        self.graphql = graphql
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds

    async def wait_for_url(self, media_ref: str) -> str:
        with tracer.start_as_current_span("shopify.poll_video_sources") as span:
            span.set_attribute("shopify.media", media_ref)

            for attempt in range(1, self.max_attempts + 1):
                await asyncio.sleep(self.interval_seconds)
                logger.info("Polling video sources (attempt %d/%d)...", attempt, self.max_attempts)

                try:
                    body = await self.graphql.execute(VIDEO_SOURCES_QUERY, {"id": media_ref})
                except TransportError as e:
                    logger.warning("Readiness poll attempt %d for %s failed: %s", attempt, media_ref, e)
                    continue

                url = self._first_source_url(body)
                if url:
                    span.set_attribute("poll.attempts", attempt)
                    logger.info("Video URL ready for %s: %s", media_ref, url)
                    return url

            readiness_timeouts_total.inc()
            span.set_attribute("poll.attempts", self.max_attempts)
            raise ReadinessTimeoutError(media_ref, self.max_attempts)

    @staticmethod
    def _first_source_url(body: dict) -> str | None:
        node = (body.get("data") or {}).get("node") or {}
        for source in node.get("sources") or []:
            if source and source.get("url"):
                return source["url"]
        return None
