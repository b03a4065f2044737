"""
BOM Cost Rollup

Computes material, labor and overhead cost for a BOM by walking its
sub-assemblies recursively:

    material = sum(unit_cost * quantity * (1 + waste_factor))
        unit_cost is the item's unit price for item lines and the
        sub-assembly's rolled-up total for bom lines
    labor    = sum(estimated_time_minutes / 60 * labor_rate)
    overhead = bom.overhead_cost
    total    = material + labor + overhead

All arithmetic is Decimal at full precision. Rounding happens in the
response schemas only.

Results are memoized per top-level call (a sub-assembly shared by two
branches is costed once) and never across calls, so a changed item price
shows up on the next read without any cache invalidation.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.core.status_config import ComponentType
from app.exceptions import (
    BusinessRuleError,
    CircularReferenceError,
    MaxDepthExceededError,
    NotFoundError,
)
from app.logging_config import get_logger
from app.models.bom import BOM
from app.services.inventory_lookup import DatabaseInventoryLookup, InventoryLookup, ItemInfo

logger = get_logger(__name__)

MINUTES_PER_HOUR = Decimal("60")


def to_decimal(value) -> Decimal:
    """Coerce a DB/JSON numeric (possibly None or float) to Decimal."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ComponentCost:
    """Cost of a single component line"""
    sort_order: int
    kind: str
    item_id: Optional[int]
    component_bom_id: Optional[int]
    label: str
    quantity: Decimal
    waste_factor: Decimal
    effective_quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal


@dataclass
class OperationCost:
    """Labor cost of a single operation"""
    sequence_number: int
    operation_name: str
    estimated_time_minutes: Decimal
    labor_rate: Decimal
    hours: Decimal
    cost: Decimal


@dataclass
class CostBreakdown:
    """Rolled-up cost of one BOM"""
    bom_id: Optional[int]
    name: str
    material_cost: Decimal
    labor_cost: Decimal
    overhead_cost: Decimal
    per_component: List[ComponentCost] = field(default_factory=list)
    per_operation: List[OperationCost] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return self.material_cost + self.labor_cost + self.overhead_cost


@dataclass
class ExplodedLine:
    """A component line at any level of a multi-level explosion"""
    level: int
    parent_bom_id: Optional[int]
    kind: str
    item_id: Optional[int]
    component_bom_id: Optional[int]
    label: str
    quantity: Decimal
    waste_factor: Decimal
    extended_quantity: Decimal
    unit_cost: Optional[Decimal] = None
    extended_cost: Optional[Decimal] = None


@dataclass
class Explosion:
    bom_id: int
    quantity: Decimal
    lines: List[ExplodedLine] = field(default_factory=list)

    @property
    def max_level(self) -> int:
        return max((line.level for line in self.lines), default=0)

    @property
    def leaf_item_count(self) -> int:
        return len([line for line in self.lines if line.kind == ComponentType.ITEM.value])

    @property
    def leaf_material_cost(self) -> Decimal:
        return sum(
            (line.extended_cost for line in self.lines if line.extended_cost is not None),
            Decimal("0"),
        )


# ============================================================================
# Calculator
# ============================================================================

class BOMCostCalculator:
    """Recursive cost rollup over the sub-assembly graph"""

    def __init__(
        self,
        db: Session,
        inventory: Optional[InventoryLookup] = None,
        max_depth: Optional[int] = None,
    ):
        self.db = db
        self.inventory = inventory or DatabaseInventoryLookup(db)
        self.max_depth = max_depth or get_settings().BOM_MAX_DEPTH

    def compute_cost(self, bom_id: int) -> CostBreakdown:
        """
        Compute the full cost breakdown of a stored BOM.

        Raises:
            NotFoundError: the BOM, a sub-assembly or an inventory item is missing
            CircularReferenceError: stored data contains a cycle
            MaxDepthExceededError: nesting deeper than max_depth
        """
        return self.compute_cost_for_bom(self._load(bom_id))

    def compute_cost_for_bom(self, bom: BOM) -> CostBreakdown:
        """Compute cost for a BOM instance, which may not be flushed yet."""
        memo: Dict[int, CostBreakdown] = {}
        return self._compute(bom, memo, [])

    def _load(self, bom_id: int) -> BOM:
        bom = self.db.get(BOM, bom_id)
        if not bom:
            raise NotFoundError("BOM", bom_id)
        return bom

    def _compute(self, bom: BOM, memo: Dict[int, CostBreakdown], stack: List[int]) -> CostBreakdown:
        key = bom.id
        if key is not None:
            if key in memo:
                return memo[key]
            if key in stack:
                path = stack[stack.index(key):] + [key]
                logger.error(
                    "Circular reference found during cost rollup",
                    extra={"bom_id": key, "cycle_path": path},
                )
                raise CircularReferenceError(path)
        if len(stack) >= self.max_depth:
            raise MaxDepthExceededError(self.max_depth, bom_id=stack[0] if stack else key)

        stack.append(key)

        material_cost = Decimal("0")
        per_component = []
        for position, component in enumerate(bom.components):
            quantity = to_decimal(component.quantity)
            waste_factor = to_decimal(component.waste_factor)
            effective_qty = quantity * (1 + waste_factor)

            if component.component_type == ComponentType.BOM.value:
                sub_bom = self._load(component.component_bom_id)
                unit_cost = self._compute(sub_bom, memo, stack).total_cost
                label = sub_bom.name
            else:
                item = self.inventory.get_item(component.item_id)
                unit_cost = self._unit_price(item)
                label = f"{item.sku} - {item.name}"

            line_cost = unit_cost * effective_qty
            material_cost += line_cost
            per_component.append(ComponentCost(
                sort_order=component.sort_order if component.sort_order is not None else position,
                kind=component.component_type,
                item_id=component.item_id,
                component_bom_id=component.component_bom_id,
                label=label,
                quantity=quantity,
                waste_factor=waste_factor,
                effective_quantity=effective_qty,
                unit_cost=unit_cost,
                line_cost=line_cost,
            ))

        labor_cost = Decimal("0")
        per_operation = []
        for position, operation in enumerate(bom.operations, start=1):
            minutes = to_decimal(operation.estimated_time_minutes)
            rate = to_decimal(operation.labor_rate)
            cost = minutes * rate / MINUTES_PER_HOUR
            labor_cost += cost
            per_operation.append(OperationCost(
                sequence_number=operation.sequence_number or position,
                operation_name=operation.operation_name,
                estimated_time_minutes=minutes,
                labor_rate=rate,
                hours=minutes / MINUTES_PER_HOUR,
                cost=cost,
            ))

        stack.pop()

        breakdown = CostBreakdown(
            bom_id=key,
            name=bom.name,
            material_cost=material_cost,
            labor_cost=labor_cost,
            overhead_cost=to_decimal(bom.overhead_cost),
            per_component=per_component,
            per_operation=per_operation,
        )
        if key is not None:
            memo[key] = breakdown
        return breakdown

    # ------------------------------------------------------------------------
    # Multi-level explosion
    # ------------------------------------------------------------------------

    def explode(self, bom_id: int, quantity: Decimal = Decimal("1"), flatten: bool = False) -> Explosion:
        """
        Expand a BOM into every line at every level.

        extended_quantity is quantity * (1 + waste_factor) multiplied down
        the chain from the requested top-level quantity. With flatten=True,
        only leaf items are returned, aggregated by item id.
        """
        bom = self._load(bom_id)
        explosion = Explosion(bom_id=bom_id, quantity=to_decimal(quantity))
        self._explode(bom, explosion.quantity, 0, [], explosion.lines)

        if flatten:
            explosion.lines = self._flatten(explosion.lines)
        return explosion

    def _explode(
        self,
        bom: BOM,
        parent_qty: Decimal,
        level: int,
        stack: List[int],
        lines: List[ExplodedLine],
    ) -> None:
        if bom.id in stack:
            raise CircularReferenceError(stack[stack.index(bom.id):] + [bom.id])
        if level >= self.max_depth:
            raise MaxDepthExceededError(self.max_depth, bom_id=stack[0] if stack else bom.id)

        stack.append(bom.id)
        for component in bom.components:
            quantity = to_decimal(component.quantity)
            waste_factor = to_decimal(component.waste_factor)
            extended_qty = parent_qty * quantity * (1 + waste_factor)

            if component.component_type == ComponentType.BOM.value:
                sub_bom = self._load(component.component_bom_id)
                lines.append(ExplodedLine(
                    level=level,
                    parent_bom_id=bom.id,
                    kind=component.component_type,
                    item_id=None,
                    component_bom_id=sub_bom.id,
                    label=sub_bom.name,
                    quantity=quantity,
                    waste_factor=waste_factor,
                    extended_quantity=extended_qty,
                ))
                self._explode(sub_bom, extended_qty, level + 1, stack, lines)
            else:
                item = self.inventory.get_item(component.item_id)
                unit_cost = self._unit_price(item)
                lines.append(ExplodedLine(
                    level=level,
                    parent_bom_id=bom.id,
                    kind=component.component_type,
                    item_id=item.id,
                    component_bom_id=None,
                    label=f"{item.sku} - {item.name}",
                    quantity=quantity,
                    waste_factor=waste_factor,
                    extended_quantity=extended_qty,
                    unit_cost=unit_cost,
                    extended_cost=unit_cost * extended_qty,
                ))
        stack.pop()

    @staticmethod
    def _unit_price(item: ItemInfo) -> Decimal:
        if item.unit_price is None:
            raise BusinessRuleError(
                f"Inventory item {item.sku} has no unit price",
                rule="unit_price_required",
                details={"item_id": item.id},
            )
        return item.unit_price

    @staticmethod
    def _flatten(lines: List[ExplodedLine]) -> List[ExplodedLine]:
        aggregated: Dict[int, ExplodedLine] = {}
        for line in lines:
            if line.kind != ComponentType.ITEM.value:
                continue
            existing = aggregated.get(line.item_id)
            if existing is None:
                aggregated[line.item_id] = ExplodedLine(
                    level=line.level,
                    parent_bom_id=None,
                    kind=line.kind,
                    item_id=line.item_id,
                    component_bom_id=None,
                    label=line.label,
                    quantity=line.quantity,
                    waste_factor=line.waste_factor,
                    extended_quantity=line.extended_quantity,
                    unit_cost=line.unit_cost,
                    extended_cost=line.extended_cost,
                )
            else:
                existing.level = min(existing.level, line.level)
                existing.extended_quantity += line.extended_quantity
                existing.extended_cost += line.extended_cost
        return list(aggregated.values())
