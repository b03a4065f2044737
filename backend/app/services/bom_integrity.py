"""
Referential integrity for sub-assemblies

A BOM referenced by another BOM's component list cannot be deleted, and
cannot be archived while a non-archived BOM still uses it.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.status_config import BOMStatus, ComponentType
from app.exceptions import ReferentialIntegrityError
from app.logging_config import get_logger
from app.models.bom import BOM, BOMComponent

logger = get_logger(__name__)


@dataclass
class WhereUsedRow:
    """A parent BOM that uses the target as a sub-assembly"""
    bom_id: int
    name: str
    status: str
    quantity: Decimal
    waste_factor: Decimal


class BOMIntegrityGuard:
    """Where-used checks over bom_components"""

    def __init__(self, db: Session):
        self.db = db

    def referencing_bom_ids(
        self,
        bom_id: int,
        exclude_statuses: Optional[Iterable[str]] = None,
    ) -> List[int]:
        """Ids of other BOMs whose components reference bom_id as a sub-assembly."""
        query = (
            self.db.query(BOMComponent.bom_id)
            .join(BOM, BOM.id == BOMComponent.bom_id)
            .filter(
                BOMComponent.component_type == ComponentType.BOM.value,
                BOMComponent.component_bom_id == bom_id,
                BOMComponent.bom_id != bom_id,
            )
        )
        if exclude_statuses:
            query = query.filter(BOM.status.notin_(list(exclude_statuses)))
        return sorted({row[0] for row in query.all()})

    def where_used(self, bom_id: int) -> List[WhereUsedRow]:
        """One row per referencing component line, ordered by parent BOM."""
        rows = (
            self.db.query(BOMComponent, BOM)
            .join(BOM, BOM.id == BOMComponent.bom_id)
            .filter(
                BOMComponent.component_type == ComponentType.BOM.value,
                BOMComponent.component_bom_id == bom_id,
            )
            .order_by(BOM.id, BOMComponent.sort_order)
            .all()
        )
        return [
            WhereUsedRow(
                bom_id=parent.id,
                name=parent.name,
                status=parent.status,
                quantity=component.quantity,
                waste_factor=component.waste_factor,
            )
            for component, parent in rows
        ]

    def can_delete(self, bom_id: int) -> None:
        """Raise ReferentialIntegrityError if any other BOM references bom_id."""
        referenced_by = self.referencing_bom_ids(bom_id)
        if referenced_by:
            logger.info(
                "BOM delete blocked by dependents",
                extra={"bom_id": bom_id, "referenced_by": referenced_by},
            )
            raise ReferentialIntegrityError(bom_id, referenced_by, action="delete")

    def can_archive(self, bom_id: int) -> None:
        """Raise ReferentialIntegrityError if a non-archived BOM references bom_id."""
        referenced_by = self.referencing_bom_ids(
            bom_id, exclude_statuses=[BOMStatus.ARCHIVED.value]
        )
        if referenced_by:
            logger.info(
                "BOM archive blocked by dependents",
                extra={"bom_id": bom_id, "referenced_by": referenced_by},
            )
            raise ReferentialIntegrityError(bom_id, referenced_by, action="archive")
