"""
Inventory models

Items and units are owned by the inventory module; the BOM engine only
reads them (unit price for costing, names for display).
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class Unit(Base):
    """Unit of measure - matches units table"""
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)  # Each, Sheet, Linear Foot
    abbreviation = Column(String(10), unique=True, nullable=False)  # EA, SHT, LF

    def __repr__(self):
        return f"<Unit {self.abbreviation}: {self.name}>"


class InventoryItem(Base):
    """Inventory item - matches inventory_items table"""
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    unit_price = Column(Numeric(12, 4), default=0, nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    unit = relationship("Unit")

    def __repr__(self):
        return f"<InventoryItem {self.sku}: {self.unit_price}>"
