"""
BOM Management Endpoints

Bill of Materials CRUD, lifecycle, cost rollup and structure queries.
Business rules live in app.services; handlers here translate between
HTTP and the service layer.
"""
from dataclasses import asdict
from decimal import Decimal
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_user, get_pagination_params
from app.core.status_config import BOMStatus, get_allowed_bom_transitions
from app.db.session import get_db
from app.models.bom import BOM
from app.models.inventory import InventoryItem, Unit
from app.models.user import User
from app.schemas.bom import (
    AuditEntryResponse,
    BOMCopyRequest,
    BOMCreate,
    BOMExplodeResponse,
    BOMListResponse,
    BOMRecalculateResponse,
    BOMResponse,
    BOMStatusChange,
    BOMUpdate,
    BOMValidateResponse,
    CostBreakdownResponse,
    ExplodedLineResponse,
    OperationResponse,
    WhereUsedResponse,
)
from app.schemas.common import ErrorResponse, ListResponse, PaginationMeta, PaginationParams
from app.services.audit_service import get_audit_trail
from app.services.bom_costing import CostBreakdown
from app.services.bom_service import BOMService

router = APIRouter(
    prefix="/boms",
    tags=["BOMs"],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def build_cost_response(breakdown: CostBreakdown) -> CostBreakdownResponse:
    return CostBreakdownResponse.model_validate(breakdown)


def build_bom_response(bom: BOM, breakdown: CostBreakdown, db: Session) -> BOMResponse:
    """Build a full BOM response with display lookups and live cost"""
    components = []
    for component in bom.components:
        item = db.get(InventoryItem, component.item_id) if component.item_id else None
        unit = db.get(Unit, component.unit_id) if component.unit_id else None
        sub_bom = db.get(BOM, component.component_bom_id) if component.component_bom_id else None
        components.append({
            "id": component.id,
            "kind": component.component_type,
            "item_id": component.item_id,
            "component_bom_id": component.component_bom_id,
            "quantity": component.quantity,
            "waste_factor": component.waste_factor,
            "unit_id": component.unit_id,
            "unit_name": unit.name if unit else None,
            "unit_abbreviation": unit.abbreviation if unit else None,
            "notes": component.notes,
            "sort_order": component.sort_order,
            "item_sku": item.sku if item else None,
            "item_name": item.name if item else None,
            "component_bom_name": sub_bom.name if sub_bom else None,
        })

    product = db.get(InventoryItem, bom.finished_product_id) if bom.finished_product_id else None
    return BOMResponse(
        id=bom.id,
        name=bom.name,
        description=bom.description,
        version=bom.version,
        status=bom.status,
        allowed_transitions=get_allowed_bom_transitions(bom.status),
        finished_product_id=bom.finished_product_id,
        finished_product_sku=product.sku if product else None,
        finished_product_name=product.name if product else None,
        overhead_cost=bom.overhead_cost,
        snapshot_total_cost=bom.total_cost,
        cost_calculated_at=bom.cost_calculated_at,
        row_version=bom.row_version,
        created_by=bom.created_by,
        created_at=bom.created_at,
        updated_at=bom.updated_at,
        components=components,
        operations=[OperationResponse.model_validate(o) for o in bom.operations],
        cost=build_cost_response(breakdown),
    )


def build_list_item(bom: BOM, db: Session) -> BOMListResponse:
    product = db.get(InventoryItem, bom.finished_product_id) if bom.finished_product_id else None
    return BOMListResponse(
        id=bom.id,
        name=bom.name,
        description=bom.description,
        version=bom.version,
        status=bom.status,
        finished_product_id=bom.finished_product_id,
        finished_product_sku=product.sku if product else None,
        finished_product_name=product.name if product else None,
        component_count=len(bom.components),
        operation_count=len(bom.operations),
        material_cost=bom.material_cost,
        labor_cost=bom.labor_cost,
        overhead_cost=bom.overhead_cost,
        total_cost=bom.total_cost,
        cost_calculated_at=bom.cost_calculated_at,
        row_version=bom.row_version,
        created_by=bom.created_by,
        created_at=bom.created_at,
        updated_at=bom.updated_at,
    )


# ============================================================================
# LIST & GET ENDPOINTS
# ============================================================================

@router.get("/", response_model=ListResponse[BOMListResponse])
async def list_boms(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    status_filter: Optional[BOMStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Match name or description"),
    finished_product_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List BOMs with summary info.

    Costs shown are the stored snapshot; use GET /boms/{id}/cost for a
    live figure.
    """
    service = BOMService(db)
    boms, total = service.list_boms(
        status=status_filter.value if status_filter else None,
        search=search,
        finished_product_id=finished_product_id,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    items = [build_list_item(bom, db) for bom in boms]
    return ListResponse[BOMListResponse](
        items=items,
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(items),
        ),
    )


@router.get("/{bom_id}", response_model=BOMResponse)
async def get_bom(
    bom_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a single BOM with components, operations and live cost."""
    service = BOMService(db)
    bom, breakdown = service.get_bom_with_cost(bom_id)
    return build_bom_response(bom, breakdown, db)


# ============================================================================
# CREATE, UPDATE & DELETE ENDPOINTS
# ============================================================================

@router.post("/", response_model=BOMResponse, status_code=status.HTTP_201_CREATED)
async def create_bom(
    bom_data: BOMCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a new BOM in draft status.

    Components and operations are stored in the order given.
    """
    service = BOMService(db)
    bom = service.create_bom(bom_data, current_user)
    return build_bom_response(bom, service.calculator.compute_cost(bom.id), db)


@router.put("/{bom_id}", response_model=BOMResponse)
async def update_bom(
    bom_id: int,
    bom_data: BOMUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Replace a BOM's header, components and operations.

    row_version must be the value last read; a stale value returns 409.
    """
    service = BOMService(db)
    bom = service.update_bom(bom_id, bom_data, current_user)
    return build_bom_response(bom, service.calculator.compute_cost(bom.id), db)


@router.delete("/{bom_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bom(
    bom_id: int,
    row_version: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a BOM. Fails with 409 while another BOM uses it as a sub-assembly."""
    BOMService(db).delete_bom(bom_id, current_user, row_version=row_version)


# ============================================================================
# LIFECYCLE ENDPOINTS
# ============================================================================

@router.post("/{bom_id}/status", response_model=BOMResponse)
async def change_bom_status(
    bom_id: int,
    request: BOMStatusChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Move a BOM to another lifecycle status."""
    service = BOMService(db)
    bom = service.change_status(bom_id, request.status, current_user, row_version=request.row_version)
    return build_bom_response(bom, service.calculator.compute_cost(bom.id), db)


@router.post("/{bom_id}/copy", response_model=BOMResponse, status_code=status.HTTP_201_CREATED)
async def copy_bom(
    bom_id: int,
    request: BOMCopyRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Copy a BOM (header, components, operations) into a new draft."""
    service = BOMService(db)
    bom = service.copy_bom(bom_id, request.name, current_user, version=request.version)
    return build_bom_response(bom, service.calculator.compute_cost(bom.id), db)


# ============================================================================
# COST ENDPOINTS
# ============================================================================

@router.get("/{bom_id}/cost", response_model=CostBreakdownResponse)
async def get_bom_cost(
    bom_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Live cost rollup through all sub-assembly levels."""
    return build_cost_response(BOMService(db).calculator.compute_cost(bom_id))


@router.post("/{bom_id}/recalculate", response_model=BOMRecalculateResponse)
async def recalculate_bom(
    bom_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Recompute the cost and store it as the BOM's snapshot."""
    bom, previous_total, breakdown = BOMService(db).recalculate(bom_id)
    return BOMRecalculateResponse(
        bom_id=bom.id,
        previous_total_cost=previous_total,
        new_total_cost=breakdown.total_cost,
        cost=build_cost_response(breakdown),
    )


# ============================================================================
# STRUCTURE ENDPOINTS
# ============================================================================

@router.get("/{bom_id}/explode", response_model=BOMExplodeResponse)
async def explode_bom(
    bom_id: int,
    quantity: Decimal = Query(Decimal("1"), gt=0, description="Top-level build quantity"),
    flatten: bool = Query(False, description="Aggregate leaf items across levels"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Explode a BOM to show all components at all levels.

    - **quantity**: Quantities are extended from this top-level amount
    - **flatten**: If true, returns only leaf items with summed quantities
    """
    explosion = BOMService(db).calculator.explode(bom_id, quantity=quantity, flatten=flatten)
    return BOMExplodeResponse(
        bom_id=explosion.bom_id,
        quantity=explosion.quantity,
        max_level=explosion.max_level,
        leaf_item_count=explosion.leaf_item_count,
        leaf_material_cost=explosion.leaf_material_cost,
        lines=[ExplodedLineResponse.model_validate(line) for line in explosion.lines],
    )


@router.get("/{bom_id}/where-used", response_model=WhereUsedResponse)
async def where_used(
    bom_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the BOMs that use this BOM as a sub-assembly."""
    service = BOMService(db)
    service.get_bom(bom_id)
    rows = service.integrity.where_used(bom_id)
    return {
        "bom_id": bom_id,
        "used_in_count": len({row.bom_id for row in rows}),
        "used_in": [asdict(row) for row in rows],
    }


@router.post("/{bom_id}/validate", response_model=BOMValidateResponse)
async def validate_bom(
    bom_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Validate a stored BOM for issues like circular references, missing
    items or unusable sub-assemblies.
    """
    issues = BOMService(db).validate_bom(bom_id)
    return {
        "bom_id": bom_id,
        "is_valid": not any(i["severity"] == "error" for i in issues),
        "error_count": len([i for i in issues if i["severity"] == "error"]),
        "warning_count": len([i for i in issues if i["severity"] == "warning"]),
        "issues": issues,
    }


@router.get("/{bom_id}/audit", response_model=List[AuditEntryResponse])
async def get_bom_audit(
    bom_id: int,
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change history for a BOM, newest first. Kept after the BOM is deleted."""
    return get_audit_trail(db, bom_id, limit=limit)
