"""Persisted entity models and the collection registry.

Records are stored as camelCase JSON, the shape the dashboard UI reads and
writes. Unknown fields are kept, so a newer UI can round-trip attributes
this package does not model.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from wealthdesk.exceptions import UnknownCollectionError


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AssetType(str, Enum):
    STOCK = "Stock"
    ETF = "ETF"
    CRYPTO = "Crypto"
    CASH = "Cash"


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class Entity(_Record):
    """A record identified by a stable string id."""

    id: str


class StockHolding(Entity):
    symbol: str
    name: str = ""
    shares: Decimal
    avg_cost: Decimal = Decimal("0")  # cost basis per share
    current_price: Decimal = Decimal("0")
    owner: str = "Me"
    day_change_percent: Decimal = Decimal("0")
    type: AssetType = AssetType.STOCK


class CashHolding(Entity):
    name: str = ""
    amount: Decimal
    currency: str = "EUR"
    owner: str = "Me"


class RealEstateProperty(Entity):
    name: str = ""
    owner: str = "Me"


class RecurringEntry(Entity):
    name: str = ""
    amount: Decimal = Decimal("0")
    type: TransactionType = TransactionType.EXPENSE
    frequency: str = "monthly"
    category: str = ""


class PortfolioDocument(Entity):
    name: str
    type: str = ""
    date: str = ""
    size: str = ""
    category: str = "Other"
    data: str | None = None  # base64 attachment payload


class Transaction(Entity):
    date: str
    amount: Decimal
    type: TransactionType
    category: str = ""
    description: str = ""
    merchant: str | None = None


class User(_Record):
    username: str
    password: str
    name: str = ""


# ──────────────────────────────────────────────
# Collection registry
# ──────────────────────────────────────────────


@dataclass(frozen=True)
class CollectionSpec:
    """How one collection is keyed, validated and synchronized.

    Attributes:
        merge_on_read: Merge the remote snapshot into local (remote wins per
            id) instead of overwriting local with it.
        size_limited: Apply the attachment size limit on remote push.
    """

    name: str
    model: type[_Record]
    id_field: str = "id"
    merge_on_read: bool = False
    size_limited: bool = False

    def parse(self, raw: Any) -> _Record:
        if isinstance(raw, self.model):
            return raw
        return self.model.model_validate(raw)

    def parse_many(self, raw_items: Any) -> list[_Record]:
        """Validate a list of raw records. Raises ValueError on any bad item."""
        if not isinstance(raw_items, list):
            raise ValueError(f"{self.name} must be a list of records")
        try:
            return [self.parse(raw) for raw in raw_items]
        except ValidationError as exc:
            raise ValueError(f"invalid {self.name} record: {exc}") from exc

    def dump(self, item: _Record) -> dict[str, Any]:
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)

    def key_of(self, item: _Record) -> str:
        return str(getattr(item, self.id_field))


COLLECTIONS: dict[str, CollectionSpec] = {
    spec.name: spec
    for spec in (
        CollectionSpec("portfolio", StockHolding),
        CollectionSpec("cash", CashHolding),
        CollectionSpec("realEstate", RealEstateProperty),
        CollectionSpec("recurringEntries", RecurringEntry),
        CollectionSpec("documents", PortfolioDocument, merge_on_read=True, size_limited=True),
        CollectionSpec("transactions", Transaction),
        CollectionSpec("users", User, id_field="username"),
    )
}


def get_collection_spec(name: str) -> CollectionSpec:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise UnknownCollectionError(f"Unknown collection: {name}") from None
