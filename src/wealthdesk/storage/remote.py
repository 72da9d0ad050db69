"""Remote document store: abstract contract and Firestore REST implementation.

The remote mirrors the local collections one-to-one, one document per
record keyed by the record id. Every failure surfaces as RemoteUnavailable;
the sync engine decides whether to swallow it.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx

from wealthdesk.exceptions import RemoteUnavailable
from wealthdesk.logging import get_logger

logger = get_logger(__name__)

_PAGE_SIZE = 300


class RemoteStore(ABC):
    """Abstract remote document store."""

    @abstractmethod
    async def list_documents(self, collection: str) -> list[dict[str, Any]]:
        """Return every document body of a collection."""
        ...

    @abstractmethod
    async def commit_batch(self, collection: str, documents: list[tuple[str, dict[str, Any]]]) -> None:
        """Write (id, body) pairs atomically. Callers keep batches under the store's cap."""
        ...

    @abstractmethod
    async def set_document(self, collection: str, doc_id: str, body: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> None:
        ...


# ──────────────────────────────────────────────
# Firestore typed value codec
# ──────────────────────────────────────────────


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a JSON value as a Firestore typed Value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    return {"stringValue": str(value)}


def encode_fields(body: dict[str, Any]) -> dict[str, Any]:
    return {str(key): encode_value(val) for key, val in body.items()}


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore typed Value back into plain JSON."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    for key in ("stringValue", "timestampValue", "referenceValue", "bytesValue"):
        if key in value:
            return value[key]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: decode_value(val) for key, val in fields.items()}


# ──────────────────────────────────────────────
# Firestore REST client
# ──────────────────────────────────────────────


class FirestoreRemoteStore(RemoteStore):
    """Firestore over its REST API with an API key.

    Args:
        client: Shared httpx.AsyncClient.
        project_id: Firebase project.
        api_key: Web API key, sent as the ``key`` query parameter.
        database_id: Firestore database, "(default)" unless configured.
        base_url: REST root, overridable for the emulator.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        project_id: str,
        api_key: str,
        database_id: str = "(default)",
        base_url: str = "https://firestore.googleapis.com/v1",
        timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._timeout = timeout
        self._root = f"projects/{project_id}/databases/{database_id}/documents"
        self._base_url = base_url.rstrip("/")

    def _doc_name(self, collection: str, doc_id: str) -> str:
        return f"{self._root}/{collection}/{doc_id}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        params = {**kwargs.pop("params", {}), "key": self._api_key}
        url = f"{self._base_url}/{path}"
        try:
            response = await self._client.request(
                method, url, params=params, timeout=self._timeout, **kwargs
            )
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"{method} {path} failed: {exc}") from exc
        if not response.is_success:
            raise RemoteUnavailable(f"{method} {path} -> HTTP {response.status_code}")
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise RemoteUnavailable(f"{method} {path} returned {type(payload).__name__}, expected an object")
        return payload

    async def list_documents(self, collection: str) -> list[dict[str, Any]]:
        documents: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"pageSize": _PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            payload = await self._request("GET", f"{self._root}/{collection}", params=params)
            try:
                for document in payload.get("documents", []):
                    documents.append(decode_fields(document.get("fields", {})))
            except (AttributeError, TypeError, ValueError) as exc:
                raise RemoteUnavailable(f"malformed document listing for {collection}: {exc}") from exc
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        logger.debug("remote_collection_listed", collection=collection, count=len(documents))
        return documents

    async def _commit(self, writes: list[dict[str, Any]]) -> None:
        await self._request("POST", f"{self._root}:commit", json={"writes": writes})

    async def commit_batch(self, collection: str, documents: list[tuple[str, dict[str, Any]]]) -> None:
        if not documents:
            return
        writes = [
            {"update": {"name": self._doc_name(collection, doc_id), "fields": encode_fields(body)}}
            for doc_id, body in documents
        ]
        await self._commit(writes)

    async def set_document(self, collection: str, doc_id: str, body: dict[str, Any]) -> None:
        await self.commit_batch(collection, [(doc_id, body)])

    async def delete_document(self, collection: str, doc_id: str) -> None:
        await self._commit([{"delete": self._doc_name(collection, doc_id)}])
