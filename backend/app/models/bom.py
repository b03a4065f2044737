"""
Bill of Materials models

A BOM is a recipe for one finished good: an ordered list of components
(each either a raw inventory item or another BOM used as a sub-assembly)
and an ordered list of labor operations. Sub-assembly edges are stored
as plain ids (`component_bom_id`) and are followed through explicit
lookups, never through ORM back-references.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from datetime import datetime

from app.db.base import Base


class BOM(Base):
    """
    BOM header.

    `version` is a free-text revision label chosen by users ("1.0", "2024-B").
    `row_version` is the optimistic-concurrency counter maintained by
    SQLAlchemy; every UPDATE increments it and a stale flush raises.
    material_cost / labor_cost / total_cost are a denormalized snapshot for
    list views and are stale until recalculated.
    """
    __tablename__ = "bill_of_materials"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String(20), default="1.0", nullable=False)
    status = Column(String(20), default="draft", nullable=False, index=True)

    # Optional link to the inventory item this BOM produces
    finished_product_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=True, index=True)

    overhead_cost = Column(Numeric(12, 4), default=0, nullable=False)

    # Cost snapshot (refreshed on save / recalculate)
    material_cost = Column(Numeric(18, 4), nullable=True)
    labor_cost = Column(Numeric(18, 4), nullable=True)
    total_cost = Column(Numeric(18, 4), nullable=True)
    cost_calculated_at = Column(DateTime, nullable=True)

    row_version = Column(Integer, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    components = relationship(
        "BOMComponent",
        back_populates="bom",
        foreign_keys="BOMComponent.bom_id",
        cascade="all, delete-orphan",
        order_by="BOMComponent.sort_order",
    )
    operations = relationship(
        "BOMOperation",
        back_populates="bom",
        cascade="all, delete-orphan",
        order_by="BOMOperation.sequence_number",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'inactive', 'archived')",
            name="ck_bill_of_materials_status",
        ),
        CheckConstraint("overhead_cost >= 0", name="ck_bill_of_materials_overhead_non_negative"),
    )

    __mapper_args__ = {"version_id_col": row_version}

    def __repr__(self):
        return f"<BOM {self.id}: {self.name} v{self.version} ({self.status})>"


class BOMComponent(Base):
    """
    A single line of a BOM.

    component_type is the discriminator: 'item' lines set item_id,
    'bom' lines set component_bom_id. Exactly one of the two is set.
    waste_factor is a fraction (0.05 = 5% overage), always below 1.
    """
    __tablename__ = "bom_components"

    id = Column(Integer, primary_key=True, index=True)
    bom_id = Column(
        Integer,
        ForeignKey("bill_of_materials.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    component_type = Column(String(10), nullable=False)  # item, bom
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=True, index=True)
    component_bom_id = Column(Integer, ForeignKey("bill_of_materials.id"), nullable=True, index=True)

    quantity = Column(Numeric(12, 4), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    waste_factor = Column(Numeric(6, 4), default=0, nullable=False)
    notes = Column(Text, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    bom = relationship("BOM", back_populates="components", foreign_keys=[bom_id])

    __table_args__ = (
        CheckConstraint(
            "(component_type = 'item' AND item_id IS NOT NULL AND component_bom_id IS NULL) OR "
            "(component_type = 'bom' AND component_bom_id IS NOT NULL AND item_id IS NULL)",
            name="ck_bom_components_single_reference",
        ),
        CheckConstraint(
            "component_bom_id IS NULL OR component_bom_id <> bom_id",
            name="ck_bom_components_no_self_reference",
        ),
        CheckConstraint("quantity > 0", name="ck_bom_components_quantity_positive"),
        CheckConstraint(
            "waste_factor >= 0 AND waste_factor < 1",
            name="ck_bom_components_waste_factor_range",
        ),
        Index("ix_bom_components_bom_sort", "bom_id", "sort_order"),
    )

    @property
    def is_sub_assembly(self) -> bool:
        return self.component_type == "bom"

    def __repr__(self):
        ref = f"bom={self.component_bom_id}" if self.is_sub_assembly else f"item={self.item_id}"
        return f"<BOMComponent {self.id} of BOM {self.bom_id}: {ref} x{self.quantity}>"


class BOMOperation(Base):
    """A labor step needed to build the BOM, in sequence order."""
    __tablename__ = "bom_operations"

    id = Column(Integer, primary_key=True, index=True)
    bom_id = Column(
        Integer,
        ForeignKey("bill_of_materials.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    operation_name = Column(String(200), nullable=False)  # Cut, Edge-band, Drill, Assemble
    description = Column(Text, nullable=True)
    sequence_number = Column(Integer, default=1, nullable=False)

    estimated_time_minutes = Column(Numeric(10, 2), nullable=False)
    labor_rate = Column(Numeric(10, 2), default=0, nullable=False)  # currency per hour

    machine_required = Column(String(200), nullable=True)
    skill_level = Column(String(20), default="basic", nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    bom = relationship("BOM", back_populates="operations")

    __table_args__ = (
        CheckConstraint("estimated_time_minutes > 0", name="ck_bom_operations_time_positive"),
        CheckConstraint("labor_rate >= 0", name="ck_bom_operations_rate_non_negative"),
        CheckConstraint(
            "skill_level IN ('basic', 'intermediate', 'advanced', 'expert')",
            name="ck_bom_operations_skill_level",
        ),
        Index("ix_bom_operations_bom_sequence", "bom_id", "sequence_number"),
    )

    def __repr__(self):
        return f"<BOMOperation {self.sequence_number}. {self.operation_name} (BOM {self.bom_id})>"
