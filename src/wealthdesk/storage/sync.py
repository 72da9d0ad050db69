"""Hybrid local/remote storage engine.

Local SQLite is the durable store every call depends on; the remote
document store, when linked, is a best-effort mirror.

Read: remote first when linked. A non-empty remote snapshot overwrites
local (documents merge instead, remote winning per id). An empty snapshot
or any remote failure returns local unmodified. Callers never see a remote
error on read.

Write: full local replace on the critical path, then a background push in
fixed-size batches. A failed batch is logged; earlier batches and the local
write stand.

Users: local first, remote only on a local miss, remote hits cached locally.
"""

import asyncio
import json
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from wealthdesk.exceptions import DataImportError, RemoteUnavailable
from wealthdesk.logging import get_logger, log_context
from wealthdesk.storage.cloud import CloudLink
from wealthdesk.storage.entities import COLLECTIONS, CollectionSpec, User, get_collection_spec
from wealthdesk.storage.local_store import LocalStore
from wealthdesk.storage.remote import RemoteStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class OversizedPayloadSkipped:
    """Advisory: a record was kept local-only because its payload is too large to mirror."""

    collection: str
    record_id: str
    size: int
    limit: int


class HybridStorage:
    """Sole writer of both the local and the remote representation.

    Args:
        local: Local record store.
        cloud: Resolves the remote store per operation.
        batch_size: Documents per remote commit.
        document_size_limit: Attachment payloads of this many characters
            or more stay local-only.
    """

    def __init__(
        self,
        local: LocalStore,
        cloud: CloudLink,
        *,
        batch_size: int = 450,
        document_size_limit: int = 800_000,
    ) -> None:
        self._local = local
        self._cloud = cloud
        self._batch_size = batch_size
        self._document_size_limit = document_size_limit
        self._pending: set[asyncio.Task] = set()

    @property
    def cloud(self) -> CloudLink:
        return self._cloud

    @property
    def pending_pushes(self) -> int:
        return len(self._pending)

    # ──────────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────────

    def _rows(self, spec: CollectionSpec, items: list[BaseModel]) -> list[tuple[str, dict[str, Any]]]:
        return [(spec.key_of(item), spec.dump(item)) for item in items]

    def _parse_lenient(self, spec: CollectionSpec, raw_items: list[dict[str, Any]], origin: str) -> list[BaseModel]:
        items = []
        for raw in raw_items:
            try:
                items.append(spec.parse(raw))
            except ValidationError as exc:
                logger.warning(
                    "invalid_record_skipped",
                    collection=spec.name,
                    origin=origin,
                    error=str(exc),
                )
        return items

    def _partition(
        self, spec: CollectionSpec, items: list[BaseModel]
    ) -> tuple[list[BaseModel], list[OversizedPayloadSkipped]]:
        """Split items into those safe to push and advisories for the rest."""
        if not spec.size_limited:
            return list(items), []
        pushable: list[BaseModel] = []
        skipped: list[OversizedPayloadSkipped] = []
        for item in items:
            size = len(getattr(item, "data", None) or "")
            if size >= self._document_size_limit:
                advisory = OversizedPayloadSkipped(
                    collection=spec.name,
                    record_id=spec.key_of(item),
                    size=size,
                    limit=self._document_size_limit,
                )
                skipped.append(advisory)
                logger.warning(
                    "oversized_document_skipped",
                    collection=spec.name,
                    record_id=advisory.record_id,
                    size=size,
                    limit=self._document_size_limit,
                )
            else:
                pushable.append(item)
        return pushable, skipped

    def _spawn(self, coro: Coroutine[Any, Any, None], collection: str) -> None:
        task = asyncio.create_task(coro, name=f"remote-push:{collection}")
        self._pending.add(task)
        task.add_done_callback(self._push_done)

    def _push_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("remote_push_crashed", task=task.get_name(), error=repr(exc))

    async def _push(self, remote: RemoteStore, spec: CollectionSpec, items: list[BaseModel]) -> None:
        rows = self._rows(spec, items)
        failed_batches = 0
        with log_context(collection=spec.name, documents=len(rows)):
            for start in range(0, len(rows), self._batch_size):
                batch = rows[start : start + self._batch_size]
                try:
                    await remote.commit_batch(spec.name, batch)
                except RemoteUnavailable as exc:
                    failed_batches += 1
                    logger.error(
                        "remote_batch_push_failed",
                        batch_start=start,
                        batch_size=len(batch),
                        error=str(exc),
                    )
            logger.info("remote_push_complete", failed_batches=failed_batches)

    async def _push_one(self, remote: RemoteStore, spec: CollectionSpec, item: BaseModel) -> None:
        try:
            await remote.set_document(spec.name, spec.key_of(item), spec.dump(item))
        except RemoteUnavailable as exc:
            logger.error("remote_item_push_failed", collection=spec.name, error=str(exc))

    # ──────────────────────────────────────────────
    # Collections
    # ──────────────────────────────────────────────

    async def get_collection(self, name: str) -> list[BaseModel]:
        spec = get_collection_spec(name)
        remote = await self._cloud.resolve()

        if remote is not None:
            try:
                raw_remote = await remote.list_documents(name)
            except RemoteUnavailable as exc:
                logger.warning("remote_read_failed_using_local", collection=name, error=str(exc))
            else:
                remote_items = self._parse_lenient(spec, raw_remote, "remote")
                if remote_items:
                    if spec.merge_on_read:
                        local_items = self._parse_lenient(spec, await self._local.get_all(name), "local")
                        merged = {spec.key_of(item): item for item in local_items}
                        merged.update((spec.key_of(item), item) for item in remote_items)
                        remote_items = list(merged.values())
                    await self._local.replace_all(name, self._rows(spec, remote_items))
                    logger.debug("collection_synced_from_remote", collection=name, count=len(remote_items))
                    return remote_items

        return self._parse_lenient(spec, await self._local.get_all(name), "local")

    async def save_collection(self, name: str, items: list[Any]) -> list[OversizedPayloadSkipped]:
        """Replace a collection locally and schedule the remote push.

        Returns advisories for records kept local-only. Raises ValueError if
        any item fails validation; nothing is written in that case.
        """
        spec = get_collection_spec(name)
        parsed = spec.parse_many(items)
        await self._local.replace_all(name, self._rows(spec, parsed))

        remote = await self._cloud.resolve()
        if remote is None:
            return []
        pushable, skipped = self._partition(spec, parsed)
        if pushable:
            self._spawn(self._push(remote, spec, pushable), name)
        return skipped

    async def save_item(self, name: str, item: Any) -> list[OversizedPayloadSkipped]:
        """Upsert one record locally and mirror it in the background."""
        spec = get_collection_spec(name)
        parsed = spec.parse_many([item])
        await self._local.put(name, spec.key_of(parsed[0]), spec.dump(parsed[0]))

        remote = await self._cloud.resolve()
        if remote is None:
            return []
        pushable, skipped = self._partition(spec, parsed)
        if pushable:
            self._spawn(self._push_one(remote, spec, pushable[0]), name)
        return skipped

    async def delete_item(self, name: str, record_id: str) -> bool:
        """Delete locally, then best-effort remotely. Returns True if it existed locally."""
        get_collection_spec(name)
        existed = await self._local.delete(name, record_id)

        remote = await self._cloud.resolve()
        if remote is not None:
            try:
                await remote.delete_document(name, record_id)
            except RemoteUnavailable as exc:
                logger.warning("remote_delete_failed", collection=name, record_id=record_id, error=str(exc))
        return existed

    # ──────────────────────────────────────────────
    # Users and session
    # ──────────────────────────────────────────────

    async def get_user(self, username: str) -> User | None:
        spec = get_collection_spec("users")
        raw = await self._local.get("users", username)
        if raw is not None:
            return User.model_validate(raw)

        remote = await self._cloud.resolve()
        if remote is None:
            return None
        try:
            documents = await remote.list_documents("users")
        except RemoteUnavailable as exc:
            logger.error("remote_user_lookup_failed", username=username, error=str(exc))
            return None

        matches = [document for document in documents if document.get("username") == username]
        for user in self._parse_lenient(spec, matches, "remote"):
            await self._local.put("users", username, spec.dump(user))
            logger.info("user_cached_from_remote", username=username)
            return user
        return None

    async def save_user(self, user: User) -> None:
        await self.save_item("users", user)

    async def login(self, username: str) -> None:
        await self._local.set_session(username)

    async def logout(self) -> None:
        await self._local.clear_session()

    async def current_user(self) -> str | None:
        return await self._local.get_session()

    async def is_authenticated(self) -> bool:
        return bool(await self._local.get_session())

    # ──────────────────────────────────────────────
    # Data management
    # ──────────────────────────────────────────────

    async def export_all(self) -> str:
        """Serialize every local collection to JSON."""
        data = {name: await self._local.get_all(name) for name in COLLECTIONS}
        return json.dumps(data, indent=2)

    async def import_data(self, payload: str | dict[str, Any]) -> dict[str, int]:
        """Import an export document.

        Every collection is validated before anything is written; each
        collection is then upserted in one transaction. Unknown top-level
        keys are ignored.

        Raises:
            DataImportError: payload is not JSON, not an object, or holds an
                invalid record. Nothing has been written.
        """
        if isinstance(payload, str):
            try:
                data = json.loads(payload)
            except ValueError as exc:
                raise DataImportError(f"Import payload is not valid JSON: {exc}") from exc
        else:
            data = payload
        if not isinstance(data, dict):
            raise DataImportError("Import payload must be a JSON object keyed by collection")

        parsed: dict[str, list[BaseModel]] = {}
        for name, raw_items in data.items():
            if name not in COLLECTIONS:
                logger.debug("import_key_ignored", key=name)
                continue
            if raw_items is None:
                continue
            try:
                parsed[name] = COLLECTIONS[name].parse_many(raw_items)
            except ValueError as exc:
                raise DataImportError(str(exc)) from exc

        for name, items in parsed.items():
            await self._local.put_many(name, self._rows(COLLECTIONS[name], items))

        remote = await self._cloud.resolve()
        if remote is not None:
            for name, items in parsed.items():
                pushable, _ = self._partition(COLLECTIONS[name], items)
                if pushable:
                    self._spawn(self._push(remote, COLLECTIONS[name], pushable), name)

        counts = {name: len(items) for name, items in parsed.items()}
        logger.info("data_imported", **counts)
        return counts

    async def clear_all(self) -> None:
        """Factory reset of local data and session. Remote data is left untouched."""
        await self._local.clear()
        await self._local.clear_session()
        logger.info("local_data_cleared")

    async def drain(self) -> None:
        """Wait for every scheduled remote push to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
