"""
Bill of Materials Pydantic Schemas
"""
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from typing import Annotated, Literal, Optional, List, Union
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from app.core.settings import get_settings
from app.core.status_config import BOMStatus, SkillLevel


def quantize_money(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round a currency amount for presentation. Never used mid-computation."""
    if value is None:
        return None
    places = get_settings().BOM_COST_DECIMAL_PLACES
    exponent = Decimal(1).scaleb(-places)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


# Currency rounded on the way out only
Money = Annotated[Decimal, PlainSerializer(quantize_money, return_type=Decimal)]


# ============================================================================
# Component Schemas (discriminated by `kind`)
# ============================================================================

class ComponentBase(BaseModel):
    """Fields shared by both component variants"""
    quantity: Decimal = Field(
        ..., gt=0, max_digits=12, decimal_places=4, description="Required quantity per finished unit"
    )
    unit_id: Optional[int] = Field(None, description="Unit of measure (display only)")
    waste_factor: Decimal = Field(
        Decimal("0"), ge=0, lt=1, max_digits=6, decimal_places=4,
        description="Fractional overage, e.g. 0.05 for 5%"
    )
    notes: Optional[str] = Field(None, max_length=1000)


class ItemComponentIn(ComponentBase):
    """A raw inventory item consumed by the BOM"""
    kind: Literal["item"] = "item"
    item_id: int = Field(..., description="Inventory item ID")


class SubAssemblyComponentIn(ComponentBase):
    """Another BOM built as a sub-assembly"""
    kind: Literal["bom"] = "bom"
    component_bom_id: int = Field(..., description="Sub-assembly BOM ID")


ComponentIn = Annotated[
    Union[ItemComponentIn, SubAssemblyComponentIn],
    Field(discriminator="kind"),
]


class ComponentResponse(BaseModel):
    """Stored component line with display lookups"""
    id: int
    kind: str
    item_id: Optional[int] = None
    component_bom_id: Optional[int] = None
    quantity: Decimal
    waste_factor: Decimal
    unit_id: Optional[int] = None
    unit_name: Optional[str] = None
    unit_abbreviation: Optional[str] = None
    notes: Optional[str] = None
    sort_order: int
    # Joined display info
    item_sku: Optional[str] = None
    item_name: Optional[str] = None
    component_bom_name: Optional[str] = None


# ============================================================================
# Operation Schemas
# ============================================================================

class OperationIn(BaseModel):
    """A labor operation; sequence follows list order"""
    operation_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_time_minutes: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    labor_rate: Decimal = Field(
        Decimal("0"), ge=0, max_digits=10, decimal_places=2, description="Cost per hour"
    )
    machine_required: Optional[str] = Field(None, max_length=200)
    skill_level: SkillLevel = SkillLevel.BASIC
    notes: Optional[str] = None


class OperationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    operation_name: str
    description: Optional[str] = None
    sequence_number: int
    estimated_time_minutes: Decimal
    labor_rate: Decimal
    machine_required: Optional[str] = None
    skill_level: str
    notes: Optional[str] = None


# ============================================================================
# BOM Request Schemas
# ============================================================================

class BOMHeader(BaseModel):
    """Editable BOM header fields"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    version: str = Field("1.0", min_length=1, max_length=20)
    finished_product_id: Optional[int] = None
    overhead_cost: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=4)


class BOMCreate(BOMHeader):
    """Create a new BOM (always starts in draft)"""
    components: List[ComponentIn] = Field(default_factory=list)
    operations: List[OperationIn] = Field(default_factory=list)


class BOMUpdate(BOMCreate):
    """
    Replace a BOM's header, components and operations wholesale.

    row_version must match the stored value, otherwise the update is
    rejected as a concurrent modification.
    """
    row_version: int = Field(..., ge=1)


class BOMStatusChange(BaseModel):
    status: BOMStatus
    row_version: int = Field(..., ge=1)


class BOMCopyRequest(BaseModel):
    """Copy a BOM into a new draft"""
    name: str = Field(..., min_length=1, max_length=255)
    version: Optional[str] = Field(None, max_length=20)


# ============================================================================
# Cost Schemas
# ============================================================================

class ComponentCostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sort_order: int
    kind: str
    item_id: Optional[int] = None
    component_bom_id: Optional[int] = None
    label: str
    quantity: Decimal
    waste_factor: Decimal
    effective_quantity: Decimal
    unit_cost: Money
    line_cost: Money


class OperationCostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence_number: int
    operation_name: str
    estimated_time_minutes: Decimal
    labor_rate: Money
    hours: Decimal
    cost: Money


class CostBreakdownResponse(BaseModel):
    """Live cost rollup (recomputed on every read)"""
    model_config = ConfigDict(from_attributes=True)

    bom_id: Optional[int]
    material_cost: Money
    labor_cost: Money
    overhead_cost: Money
    total_cost: Money
    per_component: List[ComponentCostResponse] = []
    per_operation: List[OperationCostResponse] = []


class BOMRecalculateResponse(BaseModel):
    """Response after refreshing the stored cost snapshot"""
    bom_id: int
    previous_total_cost: Optional[Money] = None
    new_total_cost: Money
    cost: CostBreakdownResponse


# ============================================================================
# BOM Response Schemas
# ============================================================================

class BOMListResponse(BaseModel):
    """BOM list item (summary). Costs are the stored snapshot."""
    id: int
    name: str
    description: Optional[str] = None
    version: str
    status: str
    finished_product_id: Optional[int] = None
    finished_product_sku: Optional[str] = None
    finished_product_name: Optional[str] = None
    component_count: int = 0
    operation_count: int = 0
    material_cost: Optional[Money] = None
    labor_cost: Optional[Money] = None
    overhead_cost: Money
    total_cost: Optional[Money] = None
    cost_calculated_at: Optional[datetime] = None
    row_version: int
    created_by: int
    created_at: datetime
    updated_at: datetime


class BOMResponse(BaseModel):
    """Full BOM details with lines and live cost"""
    id: int
    name: str
    description: Optional[str] = None
    version: str
    status: str
    allowed_transitions: List[str] = []
    finished_product_id: Optional[int] = None
    finished_product_sku: Optional[str] = None
    finished_product_name: Optional[str] = None
    overhead_cost: Money
    snapshot_total_cost: Optional[Money] = None
    cost_calculated_at: Optional[datetime] = None
    row_version: int
    created_by: int
    created_at: datetime
    updated_at: datetime
    components: List[ComponentResponse] = []
    operations: List[OperationResponse] = []
    cost: CostBreakdownResponse


# ============================================================================
# Multi-level Schemas
# ============================================================================

class ExplodedLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: int
    parent_bom_id: Optional[int] = None
    kind: str
    item_id: Optional[int] = None
    component_bom_id: Optional[int] = None
    label: str
    quantity: Decimal
    waste_factor: Decimal
    extended_quantity: Decimal
    unit_cost: Optional[Money] = None
    extended_cost: Optional[Money] = None


class BOMExplodeResponse(BaseModel):
    bom_id: int
    quantity: Decimal
    max_level: int
    leaf_item_count: int
    leaf_material_cost: Money
    lines: List[ExplodedLineResponse]


class WhereUsedEntry(BaseModel):
    bom_id: int
    name: str
    status: str
    quantity: Decimal
    waste_factor: Decimal


class WhereUsedResponse(BaseModel):
    bom_id: int
    used_in_count: int
    used_in: List[WhereUsedEntry]


class ValidationIssue(BaseModel):
    severity: Literal["error", "warning"]
    code: str
    message: str
    component_index: Optional[int] = None
    path: Optional[List[int]] = None


class BOMValidateResponse(BaseModel):
    bom_id: int
    is_valid: bool
    error_count: int
    warning_count: int
    issues: List[ValidationIssue]


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    user_id: Optional[int] = None
    timestamp: datetime
    old_values: Optional[dict] = None
    new_values: Optional[dict] = None
