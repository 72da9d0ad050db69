"""Persistence layer -- local SQLite store, remote mirror and the hybrid sync engine."""

from wealthdesk.storage.cloud import CloudConfig, CloudLink
from wealthdesk.storage.database import LocalDatabase
from wealthdesk.storage.entities import COLLECTIONS, CollectionSpec, get_collection_spec
from wealthdesk.storage.local_store import LocalStore
from wealthdesk.storage.remote import FirestoreRemoteStore, RemoteStore
from wealthdesk.storage.sync import HybridStorage, OversizedPayloadSkipped

__all__ = [
    "COLLECTIONS",
    "CloudConfig",
    "CloudLink",
    "CollectionSpec",
    "FirestoreRemoteStore",
    "HybridStorage",
    "LocalDatabase",
    "LocalStore",
    "OversizedPayloadSkipped",
    "RemoteStore",
    "get_collection_spec",
]
