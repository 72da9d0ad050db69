"""Cloud link resolution.

Whether a collection is cloud-linked is decided on every operation, never
cached: a config saved in the local settings table wins, then the
environment (CLOUD_PROJECT_ID / CLOUD_API_KEY), else the app is local-only.
"""

from collections.abc import Callable

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from wealthdesk.config import CloudSettings
from wealthdesk.exceptions import RemoteUnavailable
from wealthdesk.logging import get_logger
from wealthdesk.storage.local_store import LocalStore
from wealthdesk.storage.remote import FirestoreRemoteStore, RemoteStore

logger = get_logger(__name__)

_CONFIG_KEY = "cloud_config"


class CloudConfig(BaseModel):
    """Remote store credentials. Accepts the web SDK's camelCase config object."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)

    project_id: str
    api_key: str
    database_id: str = "(default)"
    base_url: str = "https://firestore.googleapis.com/v1"


RemoteFactory = Callable[[CloudConfig], RemoteStore]


class CloudLink:
    """Resolves the active remote store, if any."""

    def __init__(
        self,
        store: LocalStore,
        settings: CloudSettings,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 10.0,
        remote_factory: RemoteFactory | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._remote_factory = remote_factory or self._firestore

    def _firestore(self, config: CloudConfig) -> RemoteStore:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return FirestoreRemoteStore(
            self._client,
            project_id=config.project_id,
            api_key=config.api_key,
            database_id=config.database_id,
            base_url=config.base_url,
            timeout=self._timeout,
        )

    def env_config(self) -> CloudConfig | None:
        api_key = self._settings.api_key.get_secret_value()
        if not (self._settings.project_id and api_key):
            return None
        return CloudConfig(
            project_id=self._settings.project_id,
            api_key=api_key,
            database_id=self._settings.database_id,
            base_url=self._settings.base_url,
        )

    async def stored_config(self) -> CloudConfig | None:
        raw = await self._store.get_setting(_CONFIG_KEY)
        if raw is None:
            return None
        try:
            return CloudConfig.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("stored_cloud_config_invalid", error=str(exc))
            return None

    async def config(self) -> CloudConfig | None:
        """Stored config, else environment config, else None."""
        if await self._store.get_setting(_CONFIG_KEY) is not None:
            # A stored but unreadable config disables the link
            return await self.stored_config()
        return self.env_config()

    async def uses_env_config(self) -> bool:
        return self.env_config() is not None and await self._store.get_setting(_CONFIG_KEY) is None

    async def resolve(self) -> RemoteStore | None:
        config = await self.config()
        return self._remote_factory(config) if config else None

    async def save_config(self, config: CloudConfig) -> None:
        await self._store.set_setting(_CONFIG_KEY, config.model_dump_json())
        logger.info("cloud_config_saved", project_id=config.project_id)

    async def remove_config(self) -> None:
        await self._store.delete_setting(_CONFIG_KEY)
        logger.info("cloud_config_removed")

    async def test_connection(self, config: CloudConfig) -> bool:
        """Probe a config by listing a throwaway collection."""
        try:
            await self._remote_factory(config).list_documents("ping")
        except RemoteUnavailable as exc:
            logger.warning("cloud_connection_test_failed", project_id=config.project_id, error=str(exc))
            return False
        return True

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
