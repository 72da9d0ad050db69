"""Tests for the Firestore typed-value codec and REST client."""

import json

import httpx
import pytest

from wealthdesk.exceptions import RemoteUnavailable
from wealthdesk.storage.remote import FirestoreRemoteStore, decode_fields, encode_fields

ROOT = "projects/wealth-test/databases/(default)/documents"


def _store(handler) -> tuple[FirestoreRemoteStore, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = FirestoreRemoteStore(
        client,
        project_id="wealth-test",
        api_key="api-key",
        base_url="https://firestore.test/v1",
    )
    return store, client


class TestCodec:
    def test_encode_typed_values(self) -> None:
        encoded = encode_fields(
            {
                "id": "h1",
                "shares": "10.5",
                "count": 3,
                "ratio": 0.25,
                "active": True,
                "merchant": None,
                "tags": ["a", 1],
                "meta": {"owner": "Me"},
            }
        )

        assert encoded["id"] == {"stringValue": "h1"}
        assert encoded["count"] == {"integerValue": "3"}
        assert encoded["ratio"] == {"doubleValue": 0.25}
        assert encoded["active"] == {"booleanValue": True}
        assert encoded["merchant"] == {"nullValue": None}
        assert encoded["tags"] == {"arrayValue": {"values": [{"stringValue": "a"}, {"integerValue": "1"}]}}
        assert encoded["meta"] == {"mapValue": {"fields": {"owner": {"stringValue": "Me"}}}}

    def test_decode_inverts_encode(self) -> None:
        body = {"id": "h1", "count": 3, "active": False, "tags": [], "meta": {"nested": [1.5]}, "note": None}
        assert decode_fields(encode_fields(body)) == body

    def test_decode_timestamp_as_string(self) -> None:
        fields = {"createdAt": {"timestampValue": "2024-05-01T10:00:00Z"}}
        assert decode_fields(fields) == {"createdAt": "2024-05-01T10:00:00Z"}


class TestFirestoreClient:
    @pytest.mark.asyncio
    async def test_list_follows_page_tokens(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if "pageToken" not in request.url.params:
                return httpx.Response(
                    200,
                    json={
                        "documents": [{"name": f"{ROOT}/cash/c1", "fields": {"id": {"stringValue": "c1"}}}],
                        "nextPageToken": "page-2",
                    },
                )
            return httpx.Response(
                200, json={"documents": [{"name": f"{ROOT}/cash/c2", "fields": {"id": {"stringValue": "c2"}}}]}
            )

        store, client = _store(handler)
        async with client:
            documents = await store.list_documents("cash")

        assert documents == [{"id": "c1"}, {"id": "c2"}]
        assert len(requests) == 2
        assert requests[0].url.path == f"/v1/{ROOT}/cash"
        assert requests[0].url.params["key"] == "api-key"
        assert requests[1].url.params["pageToken"] == "page-2"

    @pytest.mark.asyncio
    async def test_empty_collection(self) -> None:
        store, client = _store(lambda request: httpx.Response(200, json={}))
        async with client:
            assert await store.list_documents("cash") == []

    @pytest.mark.asyncio
    async def test_commit_batch_body(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == f"/v1/{ROOT}:commit"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"writeResults": []})

        store, client = _store(handler)
        async with client:
            await store.commit_batch("cash", [("c1", {"id": "c1"}), ("c2", {"id": "c2"})])
            await store.delete_document("cash", "c1")

        writes = bodies[0]["writes"]
        assert [w["update"]["name"] for w in writes] == [f"{ROOT}/cash/c1", f"{ROOT}/cash/c2"]
        assert writes[0]["update"]["fields"] == {"id": {"stringValue": "c1"}}
        assert bodies[1] == {"writes": [{"delete": f"{ROOT}/cash/c1"}]}

    @pytest.mark.asyncio
    async def test_empty_batch_sends_nothing(self) -> None:
        calls: list[httpx.Request] = []
        store, client = _store(lambda request: calls.append(request) or httpx.Response(200))
        async with client:
            await store.commit_batch("cash", [])
        assert calls == []

    @pytest.mark.asyncio
    async def test_http_error_is_remote_unavailable(self) -> None:
        store, client = _store(lambda request: httpx.Response(403, json={"error": {"status": "PERMISSION_DENIED"}}))
        async with client:
            with pytest.raises(RemoteUnavailable, match="HTTP 403"):
                await store.list_documents("cash")

    @pytest.mark.asyncio
    async def test_transport_error_is_remote_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("dns failure", request=request)

        store, client = _store(handler)
        async with client:
            with pytest.raises(RemoteUnavailable):
                await store.set_document("cash", "c1", {"id": "c1"})

    @pytest.mark.asyncio
    async def test_non_object_body_is_remote_unavailable(self) -> None:
        store, client = _store(lambda request: httpx.Response(200, json=["unexpected"]))
        async with client:
            with pytest.raises(RemoteUnavailable, match="expected an object"):
                await store.list_documents("cash")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"documents": ["not-a-document"]},
            {"documents": [{"fields": {"amount": {"integerValue": "ten"}}}]},
            {"documents": None},
        ],
    )
    async def test_malformed_listing_is_remote_unavailable(self, payload: dict) -> None:
        store, client = _store(lambda request: httpx.Response(200, json=payload))
        async with client:
            with pytest.raises(RemoteUnavailable, match="malformed document listing"):
                await store.list_documents("cash")
