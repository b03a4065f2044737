"""
Inventory and unit lookups used by the BOM engine.

Items and units are owned by other modules. The engine only needs a
read-only view of them, so it talks to these small interfaces instead of
the ORM tables directly; tests can pass in-memory fakes.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models.inventory import InventoryItem, Unit


@dataclass(frozen=True)
class ItemInfo:
    """Costing view of an inventory item"""
    id: int
    sku: str
    name: str
    unit_price: Optional[Decimal]
    unit_id: Optional[int] = None


@dataclass(frozen=True)
class UnitInfo:
    """Display view of a unit of measure"""
    id: int
    name: str
    abbreviation: str


class InventoryLookup(Protocol):
    def get_item(self, item_id: int) -> ItemInfo:
        ...


class UnitLookup(Protocol):
    def get_unit(self, unit_id: int) -> UnitInfo:
        ...


class DatabaseInventoryLookup:
    """Reads inventory items through the request session."""

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, item_id: int) -> ItemInfo:
        item = self.db.query(InventoryItem).filter(InventoryItem.id == item_id).first()
        if not item:
            raise NotFoundError("Inventory item", item_id)
        return ItemInfo(
            id=item.id,
            sku=item.sku,
            name=item.name,
            unit_price=None if item.unit_price is None else Decimal(str(item.unit_price)),
            unit_id=item.unit_id,
        )


class DatabaseUnitLookup:
    """Reads units of measure through the request session."""

    def __init__(self, db: Session):
        self.db = db

    def get_unit(self, unit_id: int) -> UnitInfo:
        unit = self.db.query(Unit).filter(Unit.id == unit_id).first()
        if not unit:
            raise NotFoundError("Unit", unit_id)
        return UnitInfo(id=unit.id, name=unit.name, abbreviation=unit.abbreviation)
