"""
BOM Service

Orchestrates BOM saves: validation, cycle detection, lifecycle rules,
replace-all persistence of components and operations, cost snapshot and
audit trail. Each mutating call is one transaction; any failure rolls
the session back and nothing is written.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.core.settings import get_settings
from app.core.status_config import (
    BOMStatus,
    ComponentType,
    SkillLevel,
    USABLE_SUBASSEMBLY_STATUSES,
)
from app.exceptions import (
    ConcurrencyError,
    DuplicateError,
    MaxDepthExceededError,
    NotFoundError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models.bom import BOM, BOMComponent, BOMOperation
from app.models.user import User
from app.schemas.bom import BOMCreate, BOMUpdate
from app.services.audit_service import BOM_TABLE, record_audit, serialize_bom
from app.services.bom_costing import BOMCostCalculator, CostBreakdown, to_decimal
from app.services.bom_graph import BOMGraph, proposed_sub_assembly_ids
from app.services.bom_integrity import BOMIntegrityGuard
from app.services.bom_lifecycle import BOMLifecycleManager
from app.services.inventory_lookup import (
    DatabaseInventoryLookup,
    DatabaseUnitLookup,
    InventoryLookup,
    ItemInfo,
    UnitLookup,
)

logger = get_logger(__name__)

SKILL_LEVELS = {level.value for level in SkillLevel}


class BOMService:
    """BOM create / update / delete / status / copy / recalculate"""

    def __init__(
        self,
        db: Session,
        inventory: Optional[InventoryLookup] = None,
        units: Optional[UnitLookup] = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.inventory = inventory or DatabaseInventoryLookup(db)
        self.units = units or DatabaseUnitLookup(db)
        self.graph = BOMGraph(db)
        self.integrity = BOMIntegrityGuard(db)
        self.lifecycle = BOMLifecycleManager(db, self.integrity)
        self.calculator = BOMCostCalculator(db, self.inventory)

    # ========================================================================
    # Reads
    # ========================================================================

    def get_bom(self, bom_id: int) -> BOM:
        bom = (
            self.db.query(BOM)
            .options(selectinload(BOM.components), selectinload(BOM.operations))
            .filter(BOM.id == bom_id)
            .first()
        )
        if not bom:
            raise NotFoundError("BOM", bom_id)
        return bom

    def get_bom_with_cost(self, bom_id: int) -> Tuple[BOM, CostBreakdown]:
        """BOM plus a cost breakdown computed fresh from the leaves."""
        bom = self.get_bom(bom_id)
        return bom, self.calculator.compute_cost(bom.id)

    def list_boms(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        finished_product_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[BOM], int]:
        """
        Filtered page of BOMs, most recently updated first.

        Returns:
            (rows, total matching rows)
        """
        query = self.db.query(BOM)
        if status:
            query = query.filter(BOM.status == status)
        if finished_product_id is not None:
            query = query.filter(BOM.finished_product_id == finished_product_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(BOM.name.ilike(pattern), BOM.description.ilike(pattern)))

        total = query.count()
        rows = (
            query.options(selectinload(BOM.components), selectinload(BOM.operations))
            .order_by(BOM.updated_at.desc(), BOM.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    # ========================================================================
    # Mutations
    # ========================================================================

    def create_bom(self, data: BOMCreate, user: User) -> BOM:
        """Create a draft BOM with its components and operations."""
        items = self._validate_payload(data)
        name = data.name.strip()
        self._assert_unique_name(name)
        self.graph.validate_acyclic(None, data.components)

        bom = BOM(
            name=name,
            description=data.description,
            version=(data.version or "1.0").strip(),
            status=BOMStatus.DRAFT.value,
            finished_product_id=data.finished_product_id,
            overhead_cost=data.overhead_cost,
            created_by=user.id,
        )
        bom.components = self._build_components(data, items)
        bom.operations = self._build_operations(data)

        try:
            with self.db.no_autoflush:
                self._refresh_snapshot(bom)
            self.db.add(bom)
            self.db.flush()
            record_audit(self.db, BOM_TABLE, bom.id, "INSERT", None, serialize_bom(bom), user.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bom)
        logger.info(
            "BOM created",
            extra={
                "bom_id": bom.id,
                "component_count": len(bom.components),
                "operation_count": len(bom.operations),
                "user_id": user.id,
            },
        )
        return bom

    def update_bom(self, bom_id: int, data: BOMUpdate, user: User) -> BOM:
        """
        Replace a BOM's header, components and operations.

        The full lists are revalidated on every call. row_version must
        match the stored value.
        """
        bom = self.get_bom(bom_id)
        self._check_row_version(bom, data.row_version)
        self.lifecycle.assert_can_edit(bom, user)

        items = self._validate_payload(data)
        if bom.status != BOMStatus.DRAFT.value:
            self._assert_has_lines(data)
        name = data.name.strip()
        self._assert_unique_name(name, exclude_id=bom.id)
        self.graph.validate_acyclic(bom.id, data.components)
        if bom.status == BOMStatus.ACTIVE.value:
            self.lifecycle.check_sub_assembly_statuses(proposed_sub_assembly_ids(data.components))

        old_values = serialize_bom(bom)
        try:
            with self.db.no_autoflush:
                bom.name = name
                bom.description = data.description
                bom.version = (data.version or bom.version).strip()
                bom.finished_product_id = data.finished_product_id
                bom.overhead_cost = data.overhead_cost
                bom.components = self._build_components(data, items)
                bom.operations = self._build_operations(data)
                # Header row always gets an UPDATE, so row_version always advances
                bom.updated_at = datetime.utcnow()
                self._refresh_snapshot(bom)
            self.db.flush()
            record_audit(self.db, BOM_TABLE, bom.id, "UPDATE", old_values, serialize_bom(bom), user.id)
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("BOM update lost a concurrent write", extra={"bom_id": bom_id})
            raise ConcurrencyError(
                f"BOM {bom_id} was modified by another user",
                expected_version=data.row_version,
            )
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bom)
        logger.info(
            "BOM updated",
            extra={"bom_id": bom.id, "row_version": bom.row_version, "user_id": user.id},
        )
        return bom

    def delete_bom(self, bom_id: int, user: User, row_version: Optional[int] = None) -> None:
        """Delete a BOM and its own lines. Rejected while other BOMs use it."""
        bom = self.get_bom(bom_id)
        self._check_row_version(bom, row_version)
        self.lifecycle.assert_can_delete(bom, user)

        old_values = serialize_bom(bom)
        try:
            self.db.delete(bom)
            record_audit(self.db, BOM_TABLE, bom_id, "DELETE", old_values, None, user.id)
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrencyError(
                f"BOM {bom_id} was modified by another user",
                expected_version=row_version,
            )
        except Exception:
            self.db.rollback()
            raise

        logger.info("BOM deleted", extra={"bom_id": bom_id, "user_id": user.id})

    def change_status(
        self,
        bom_id: int,
        new_status: str,
        user: User,
        row_version: Optional[int] = None,
    ) -> BOM:
        """Move a BOM to a new lifecycle status."""
        bom = self.get_bom(bom_id)
        self._check_row_version(bom, row_version)

        old_status = self.lifecycle.transition(bom, new_status, user)
        if old_status == bom.status:
            return bom

        try:
            self.db.flush()
            record_audit(
                self.db, BOM_TABLE, bom.id, "STATUS",
                {"status": old_status}, {"status": bom.status}, user.id,
            )
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrencyError(
                f"BOM {bom_id} was modified by another user",
                expected_version=row_version,
            )
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bom)
        return bom

    def copy_bom(self, bom_id: int, new_name: str, user: User, version: Optional[str] = None) -> BOM:
        """Copy a BOM's header, components and operations into a new draft."""
        source = self.get_bom(bom_id)
        name = (new_name or "").strip()
        if not name:
            raise ValidationError("BOM name is required", field="name")
        self._assert_unique_name(name)

        bom = BOM(
            name=name,
            description=source.description,
            version=(version or source.version).strip(),
            status=BOMStatus.DRAFT.value,
            finished_product_id=source.finished_product_id,
            overhead_cost=source.overhead_cost,
            created_by=user.id,
        )
        bom.components = [
            BOMComponent(
                component_type=c.component_type,
                item_id=c.item_id,
                component_bom_id=c.component_bom_id,
                quantity=c.quantity,
                unit_id=c.unit_id,
                waste_factor=c.waste_factor,
                notes=c.notes,
                sort_order=c.sort_order,
            )
            for c in source.components
        ]
        bom.operations = [
            BOMOperation(
                operation_name=o.operation_name,
                description=o.description,
                sequence_number=o.sequence_number,
                estimated_time_minutes=o.estimated_time_minutes,
                labor_rate=o.labor_rate,
                machine_required=o.machine_required,
                skill_level=o.skill_level,
                notes=o.notes,
            )
            for o in source.operations
        ]

        try:
            with self.db.no_autoflush:
                self._refresh_snapshot(bom)
            self.db.add(bom)
            self.db.flush()
            new_values = serialize_bom(bom)
            new_values["copied_from"] = source.id
            record_audit(self.db, BOM_TABLE, bom.id, "INSERT", None, new_values, user.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bom)
        logger.info(
            "BOM copied",
            extra={"bom_id": bom.id, "source_bom_id": source.id, "user_id": user.id},
        )
        return bom

    def recalculate(self, bom_id: int) -> Tuple[BOM, Optional[Decimal], CostBreakdown]:
        """
        Recompute the live cost and store it as the header snapshot.

        The snapshot is written without bumping row_version, so clients
        holding the BOM can still save their edits.

        Returns:
            (bom, previous snapshot total, fresh breakdown)
        """
        bom = self.get_bom(bom_id)
        previous_total = bom.total_cost
        breakdown = self.calculator.compute_cost(bom.id)

        try:
            self.db.execute(
                update(BOM)
                .where(BOM.id == bom.id)
                .values(
                    material_cost=breakdown.material_cost,
                    labor_cost=breakdown.labor_cost,
                    total_cost=breakdown.total_cost,
                    cost_calculated_at=datetime.utcnow(),
                    updated_at=BOM.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bom)
        logger.info(
            "BOM cost recalculated",
            extra={
                "bom_id": bom.id,
                "previous_total_cost": str(previous_total) if previous_total is not None else None,
                "new_total_cost": str(breakdown.total_cost),
            },
        )
        return bom, previous_total, breakdown

    # ========================================================================
    # Diagnostics
    # ========================================================================

    def validate_bom(self, bom_id: int) -> List[Dict[str, Any]]:
        """
        Check a stored BOM for problems without changing it.

        Returns a list of issues, each with severity "error" or "warning".
        """
        bom = self.get_bom(bom_id)
        is_draft = bom.status == BOMStatus.DRAFT.value
        issues: List[Dict[str, Any]] = []

        if not bom.components:
            issues.append({
                "severity": "warning" if is_draft else "error",
                "code": "no_components",
                "message": "BOM has no components",
            })
        if not bom.operations:
            issues.append({
                "severity": "warning" if is_draft else "error",
                "code": "no_operations",
                "message": "BOM has no operations",
            })

        for index, component in enumerate(bom.components):
            if component.component_type == ComponentType.ITEM.value:
                try:
                    item = self.inventory.get_item(component.item_id)
                except NotFoundError:
                    issues.append({
                        "severity": "error",
                        "code": "missing_item",
                        "message": f"Inventory item {component.item_id} not found",
                        "component_index": index,
                    })
                    continue
                if item.unit_price is None:
                    issues.append({
                        "severity": "error",
                        "code": "missing_price",
                        "message": f"Item {item.sku} has no unit price; cost cannot be computed",
                        "component_index": index,
                    })
                elif item.unit_price <= 0:
                    issues.append({
                        "severity": "warning",
                        "code": "missing_cost",
                        "message": f"Item {item.sku} has a zero unit price",
                        "component_index": index,
                    })
            else:
                sub_bom = self.db.get(BOM, component.component_bom_id)
                if not sub_bom:
                    issues.append({
                        "severity": "error",
                        "code": "missing_subassembly",
                        "message": f"Sub-assembly BOM {component.component_bom_id} not found",
                        "component_index": index,
                    })
                elif sub_bom.status not in USABLE_SUBASSEMBLY_STATUSES:
                    issues.append({
                        "severity": "error" if bom.status == BOMStatus.ACTIVE.value else "warning",
                        "code": "subassembly_not_usable",
                        "message": f"Sub-assembly '{sub_bom.name}' is {sub_bom.status}",
                        "component_index": index,
                    })

        try:
            cycle = self.graph.find_cycle(bom.id)
        except MaxDepthExceededError as e:
            issues.append({
                "severity": "error",
                "code": "max_depth_exceeded",
                "message": e.message,
            })
        else:
            if cycle:
                issues.append({
                    "severity": "error",
                    "code": "circular_reference",
                    "message": "Circular sub-assembly reference: "
                               + " -> ".join(str(i) for i in cycle),
                    "path": cycle,
                })

        return issues

    # ========================================================================
    # Helpers
    # ========================================================================

    def _check_row_version(self, bom: BOM, expected: Optional[int]) -> None:
        if expected is not None and bom.row_version != expected:
            raise ConcurrencyError(
                f"BOM {bom.id} was modified by another user",
                expected_version=expected,
                current_version=bom.row_version,
            )

    def _assert_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(BOM.id).filter(BOM.name == name)
        if exclude_id is not None:
            query = query.filter(BOM.id != exclude_id)
        if query.first():
            raise DuplicateError("BOM", field="name", value=name)

    @staticmethod
    def _assert_has_lines(data: BOMCreate) -> None:
        if not data.components:
            raise ValidationError("BOM must have at least one component", field="components")
        if not data.operations:
            raise ValidationError("BOM must have at least one operation", field="operations")

    def _validate_payload(self, data: BOMCreate) -> Dict[int, ItemInfo]:
        """
        Validate header, components and operations before any write.

        Returns:
            Inventory items referenced by item components, keyed by id
        """
        if not data.name or not data.name.strip():
            raise ValidationError("BOM name is required", field="name")
        if len(data.name.strip()) > 255:
            raise ValidationError("BOM name must be at most 255 characters", field="name")
        if to_decimal(data.overhead_cost) < 0:
            raise ValidationError(
                "Overhead cost cannot be negative", field="overhead_cost", value=data.overhead_cost
            )
        if data.finished_product_id is not None:
            try:
                self.inventory.get_item(data.finished_product_id)
            except NotFoundError:
                raise ValidationError(
                    f"Finished product {data.finished_product_id} not found",
                    field="finished_product_id",
                    value=data.finished_product_id,
                )

        items: Dict[int, ItemInfo] = {}
        for index, component in enumerate(data.components):
            prefix = f"components[{index}]"
            quantity = to_decimal(component.quantity)
            waste_factor = to_decimal(component.waste_factor)
            if quantity <= 0:
                raise ValidationError(
                    "Quantity must be greater than zero", field=f"{prefix}.quantity", value=quantity
                )
            if waste_factor < 0 or waste_factor >= 1:
                raise ValidationError(
                    "Waste factor must be at least 0 and less than 1",
                    field=f"{prefix}.waste_factor",
                    value=waste_factor,
                )

            if component.kind == ComponentType.ITEM.value:
                try:
                    items[component.item_id] = self.inventory.get_item(component.item_id)
                except NotFoundError:
                    raise ValidationError(
                        f"Inventory item {component.item_id} not found",
                        field=f"{prefix}.item_id",
                        value=component.item_id,
                    )
            elif component.kind == ComponentType.BOM.value:
                if self.db.get(BOM, component.component_bom_id) is None:
                    raise ValidationError(
                        f"Sub-assembly BOM {component.component_bom_id} not found",
                        field=f"{prefix}.component_bom_id",
                        value=component.component_bom_id,
                    )
            else:
                raise ValidationError(
                    "Component kind must be 'item' or 'bom'", field=f"{prefix}.kind"
                )

            if component.unit_id is not None:
                try:
                    self.units.get_unit(component.unit_id)
                except NotFoundError:
                    raise ValidationError(
                        f"Unit {component.unit_id} not found",
                        field=f"{prefix}.unit_id",
                        value=component.unit_id,
                    )

        for index, operation in enumerate(data.operations):
            prefix = f"operations[{index}]"
            if not operation.operation_name or not operation.operation_name.strip():
                raise ValidationError("Operation name is required", field=f"{prefix}.operation_name")
            if to_decimal(operation.estimated_time_minutes) <= 0:
                raise ValidationError(
                    "Estimated time must be greater than zero",
                    field=f"{prefix}.estimated_time_minutes",
                    value=operation.estimated_time_minutes,
                )
            if to_decimal(operation.labor_rate) < 0:
                raise ValidationError(
                    "Labor rate cannot be negative",
                    field=f"{prefix}.labor_rate",
                    value=operation.labor_rate,
                )
            skill_level = getattr(operation.skill_level, "value", operation.skill_level)
            if skill_level not in SKILL_LEVELS:
                raise ValidationError(
                    "Unknown skill level", field=f"{prefix}.skill_level", value=skill_level
                )

        return items

    @staticmethod
    def _build_components(data: BOMCreate, items: Dict[int, ItemInfo]) -> List[BOMComponent]:
        components = []
        for position, component in enumerate(data.components):
            if component.kind == ComponentType.ITEM.value:
                # Fall back to the item's stocking unit for display
                unit_id = component.unit_id or items[component.item_id].unit_id
                components.append(BOMComponent(
                    component_type=ComponentType.ITEM.value,
                    item_id=component.item_id,
                    quantity=component.quantity,
                    unit_id=unit_id,
                    waste_factor=component.waste_factor,
                    notes=component.notes,
                    sort_order=position,
                ))
            else:
                components.append(BOMComponent(
                    component_type=ComponentType.BOM.value,
                    component_bom_id=component.component_bom_id,
                    quantity=component.quantity,
                    unit_id=component.unit_id,
                    waste_factor=component.waste_factor,
                    notes=component.notes,
                    sort_order=position,
                ))
        return components

    @staticmethod
    def _build_operations(data: BOMCreate) -> List[BOMOperation]:
        return [
            BOMOperation(
                operation_name=operation.operation_name.strip(),
                description=operation.description,
                sequence_number=position,
                estimated_time_minutes=operation.estimated_time_minutes,
                labor_rate=operation.labor_rate,
                machine_required=operation.machine_required,
                skill_level=getattr(operation.skill_level, "value", operation.skill_level),
                notes=operation.notes,
            )
            for position, operation in enumerate(data.operations, start=1)
        ]

    def _refresh_snapshot(self, bom: BOM) -> None:
        """Store the current rollup on the header for list views."""
        if not self.settings.BOM_SNAPSHOT_ON_SAVE:
            return
        breakdown = self.calculator.compute_cost_for_bom(bom)
        bom.material_cost = breakdown.material_cost
        bom.labor_cost = breakdown.labor_cost
        bom.total_cost = breakdown.total_cost
        bom.cost_calculated_at = datetime.utcnow()
