import json

import httpx
import pytest

from promoreel.errors import PartialFailureError, TransferError, TransportError
from promoreel.services.staged_upload_publisher import (
    ShopifyGraphQLClient,
    StagedTarget,
    StagedUploadPublisher,
    product_gid,
)

pytestmark = pytest.mark.anyio

SHOP = "test-shop.myshopify.com"
UPLOAD_URL = "https://shopify-video-production.storage.googleapis.com/upload"
RESOURCE_URL = "https://shopify-video-production.storage.googleapis.com/tmp/abc/job.mp4"


def _staged_response():
    return {
        "data": {
            "stagedUploadsCreate": {
                "stagedTargets": [
                    {
                        "url": UPLOAD_URL,
                        "resourceUrl": RESOURCE_URL,
                        "parameters": [
                            {"name": "key", "value": "tmp/abc/job.mp4"},
                            {"name": "policy", "value": "c2lnbmVk"},
                        ],
                    }
                ],
                "userErrors": [],
            }
        }
    }


def _publisher(handler):
    transport = httpx.MockTransport(handler)
    graphql = ShopifyGraphQLClient(SHOP, "shpat_test", transport=transport)
    return StagedUploadPublisher(graphql, transport=transport)


def test_product_gid():
    assert product_gid("42") == "gid://shopify/Product/42"
    assert product_gid("gid://shopify/Product/42") == "gid://shopify/Product/42"


class TestStage:
    async def test_stage_returns_target(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["token"] = request.headers["X-Shopify-Access-Token"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_staged_response())

        target = await _publisher(handler).stage("job.mp4", 7680)

        assert target.url == UPLOAD_URL
        assert target.resource_url == RESOURCE_URL
        assert target.parameters == [("key", "tmp/abc/job.mp4"), ("policy", "c2lnbmVk")]
        assert seen["url"] == f"https://{SHOP}/admin/api/2024-10/graphql.json"
        assert seen["token"] == "shpat_test"
        staged_input = seen["body"]["variables"]["input"][0]
        assert staged_input == {
            "filename": "job.mp4",
            "mimeType": "video/mp4",
            "resource": "VIDEO",
            "fileSize": "7680",
            "httpMethod": "POST",
        }

    async def test_user_errors_raise_partial_failure(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {"stagedUploadsCreate": {"stagedTargets": [], "userErrors": [{"field": ["fileSize"], "message": "too big"}]}}},
            )

        with pytest.raises(PartialFailureError) as exc:
            await _publisher(handler).stage("job.mp4", 1)
        assert exc.value.errors[0]["message"] == "too big"

    async def test_top_level_errors_raise_partial_failure(self):
        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "Access denied"}]})

        with pytest.raises(PartialFailureError):
            await _publisher(handler).stage("job.mp4", 1)

    async def test_http_failure_raises_transport_error(self):
        def handler(request):
            return httpx.Response(401, text="Invalid API key or access token")

        with pytest.raises(TransportError) as exc:
            await _publisher(handler).stage("job.mp4", 1)
        assert exc.value.status_code == 401


class TestTransfer:
    async def test_posts_parameters_then_file(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(201)

        target = StagedTarget(url=UPLOAD_URL, resource_url=RESOURCE_URL, parameters=[("key", "tmp/k"), ("policy", "p")])
        payload = b"\x00\x00\x00\x18ftypmp42" + b"\xff" * 100

        await _publisher(handler).transfer(target, payload, "job.mp4")

        body = seen["body"]
        assert seen["url"] == UPLOAD_URL
        assert seen["content_type"].startswith("multipart/form-data")
        assert body.index(b'name="key"') < body.index(b'name="policy"') < body.index(b'name="file"')
        assert payload in body

    async def test_repeated_parameter_names_are_sent_verbatim(self):
        seen = {}

        def handler(request):
            seen["body"] = request.content
            return httpx.Response(204)

        target = StagedTarget(
            url=UPLOAD_URL,
            resource_url=RESOURCE_URL,
            parameters=[("acl", "private"), ("x-meta", "first"), ("x-meta", "second")],
        )

        await _publisher(handler).transfer(target, b"video-bytes", "job.mp4")

        body = seen["body"]
        assert body.count(b'name="x-meta"') == 2
        assert body.index(b"first") < body.index(b"second") < body.index(b'name="file"')
        assert body.index(b'name="acl"') < body.index(b"first")
        assert b'name="x-meta"; filename' not in body

    async def test_failure_raises_transfer_error(self):
        def handler(request):
            return httpx.Response(403, text="<Error>SignatureDoesNotMatch</Error>")

        target = StagedTarget(url=UPLOAD_URL, resource_url=RESOURCE_URL)
        with pytest.raises(TransferError) as exc:
            await _publisher(handler).transfer(target, b"x", "job.mp4")
        assert exc.value.status_code == 403


class TestAttach:
    async def test_returns_media_id(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"data": {"productCreateMedia": {"media": [{"id": "gid://shopify/Video/99", "sources": []}], "mediaUserErrors": []}}},
            )

        media_ref = await _publisher(handler).attach("8123456789", RESOURCE_URL)

        assert media_ref == "gid://shopify/Video/99"
        assert seen["body"]["variables"] == {
            "productId": "gid://shopify/Product/8123456789",
            "media": [{"originalSource": RESOURCE_URL, "mediaContentType": "VIDEO"}],
        }

    async def test_media_user_errors_fail_despite_http_200(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {"productCreateMedia": {"media": [], "mediaUserErrors": [{"field": ["productId"], "message": "Product does not exist"}]}}},
            )

        with pytest.raises(PartialFailureError):
            await _publisher(handler).attach("1", RESOURCE_URL)

    async def test_missing_media_id_fails(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"productCreateMedia": {"media": [None], "mediaUserErrors": []}}})

        with pytest.raises(PartialFailureError):
            await _publisher(handler).attach("1", RESOURCE_URL)


async def test_publish_runs_stage_transfer_attach_in_order():
    order = []

    def handler(request):
        if request.url.host == SHOP:
            query = json.loads(request.content)["query"]
            if "stagedUploadsCreate" in query:
                order.append("stage")
                return httpx.Response(200, json=_staged_response())
            order.append("attach")
            return httpx.Response(
                200,
                json={"data": {"productCreateMedia": {"media": [{"id": "gid://shopify/Video/7"}], "mediaUserErrors": []}}},
            )
        order.append("transfer")
        return httpx.Response(204)

    media_ref = await _publisher(handler).publish("1", b"video", "job.mp4")

    assert media_ref == "gid://shopify/Video/7"
    assert order == ["stage", "transfer", "attach"]
