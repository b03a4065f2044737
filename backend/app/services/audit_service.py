"""
Audit Service

Helpers for recording BOM change history in the audit_trail table.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.models.bom import BOM

BOM_TABLE = BOM.__tablename__


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def serialize_bom(bom: BOM) -> Dict[str, Any]:
    """Snapshot a BOM with its components and operations as JSON-safe values."""
    return {
        "name": bom.name,
        "description": bom.description,
        "version": bom.version,
        "status": bom.status,
        "finished_product_id": bom.finished_product_id,
        "overhead_cost": _json_safe(bom.overhead_cost),
        "total_cost": _json_safe(bom.total_cost),
        "row_version": bom.row_version,
        "components": [
            {
                "kind": c.component_type,
                "item_id": c.item_id,
                "component_bom_id": c.component_bom_id,
                "quantity": _json_safe(c.quantity),
                "unit_id": c.unit_id,
                "waste_factor": _json_safe(c.waste_factor),
                "notes": c.notes,
            }
            for c in bom.components
        ],
        "operations": [
            {
                "operation_name": o.operation_name,
                "description": o.description,
                "estimated_time_minutes": _json_safe(o.estimated_time_minutes),
                "labor_rate": _json_safe(o.labor_rate),
                "machine_required": o.machine_required,
                "skill_level": o.skill_level,
                "notes": o.notes,
            }
            for o in bom.operations
        ],
    }


def record_audit(
    db: Session,
    table_name: str,
    record_id: int,
    action: str,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
) -> AuditLog:
    """
    Record an audit trail entry.

    Args:
        db: Database session
        table_name: Table of the changed record
        record_id: Primary key of the changed record
        action: INSERT, UPDATE, DELETE or STATUS
        old_values: State before the change
        new_values: State after the change
        user_id: User who made the change

    Returns:
        The created AuditLog instance
    """
    entry = AuditLog(
        table_name=table_name,
        record_id=record_id,
        action=action,
        old_values=old_values,
        new_values=new_values,
        user_id=user_id,
        timestamp=datetime.utcnow(),
    )
    db.add(entry)
    # Don't commit - let the calling function handle the transaction
    return entry


def get_audit_trail(db: Session, bom_id: int, limit: int = 100) -> List[AuditLog]:
    """Most recent audit entries for a BOM, newest first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.table_name == BOM_TABLE, AuditLog.record_id == bom_id)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
