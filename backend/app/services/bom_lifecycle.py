"""
BOM lifecycle rules

Who may change a BOM in each status, and which status changes are allowed.
Transition map lives in app.core.status_config.
"""
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.core.status_config import (
    BOMStatus,
    USABLE_SUBASSEMBLY_STATUSES,
    get_allowed_bom_transitions,
    is_valid_bom_transition,
)
from app.exceptions import (
    BusinessRuleError,
    InvalidStateError,
    PermissionDeniedError,
    ValidationError,
)
from app.logging_config import get_logger
from app.models.bom import BOM
from app.models.user import User
from app.services.bom_integrity import BOMIntegrityGuard

logger = get_logger(__name__)

EDITABLE_STATUSES = [BOMStatus.DRAFT.value, BOMStatus.ACTIVE.value, BOMStatus.INACTIVE.value]


def _status_value(status: Union[str, BOMStatus]) -> str:
    return status.value if isinstance(status, BOMStatus) else BOMStatus(status).value


class BOMLifecycleManager:
    """Status transitions and per-status edit permissions"""

    def __init__(self, db: Session, integrity: Optional[BOMIntegrityGuard] = None):
        self.db = db
        self.integrity = integrity or BOMIntegrityGuard(db)

    def assert_can_edit(self, bom: BOM, user: User) -> None:
        """
        Raise unless user may replace this BOM's contents.

        draft: creator, manager or admin
        active / inactive: manager or admin
        archived: nobody (restore to inactive first)
        """
        if bom.status == BOMStatus.ARCHIVED.value:
            raise InvalidStateError(
                f"BOM {bom.id} is archived and cannot be edited; restore it first",
                current_state=bom.status,
                allowed_states=EDITABLE_STATUSES,
            )
        if bom.status == BOMStatus.DRAFT.value and bom.created_by == user.id:
            return
        if not user.is_privileged:
            raise PermissionDeniedError(
                f"Only managers and admins may edit a BOM in status '{bom.status}'",
                action="edit",
                resource=f"BOM {bom.id}",
            )

    def assert_can_delete(self, bom: BOM, user: User) -> None:
        """Same ownership rules as editing, except archived BOMs may be deleted."""
        is_owner_draft = bom.status == BOMStatus.DRAFT.value and bom.created_by == user.id
        if not (is_owner_draft or user.is_privileged):
            raise PermissionDeniedError(
                f"Only managers and admins may delete a BOM in status '{bom.status}'",
                action="delete",
                resource=f"BOM {bom.id}",
            )
        self.integrity.can_delete(bom.id)

    def assert_can_change_status(self, bom: BOM, new_status: str, user: User) -> None:
        if user.is_privileged:
            return
        # Creators may release or discard their own draft
        if (
            bom.status == BOMStatus.DRAFT.value
            and bom.created_by == user.id
            and new_status in (BOMStatus.ACTIVE.value, BOMStatus.ARCHIVED.value)
        ):
            return
        raise PermissionDeniedError(
            f"Not allowed to change BOM status from '{bom.status}' to '{new_status}'",
            action="change_status",
            resource=f"BOM {bom.id}",
        )

    def validate_transition(self, bom: BOM, new_status: Union[str, BOMStatus]) -> None:
        """Check the transition map and the entry conditions of the target status."""
        new_status = _status_value(new_status)
        if not is_valid_bom_transition(bom.status, new_status):
            raise InvalidStateError(
                f"Cannot change BOM status from '{bom.status}' to '{new_status}'",
                current_state=bom.status,
                allowed_states=get_allowed_bom_transitions(bom.status),
            )
        if new_status == bom.status:
            return

        if bom.status == BOMStatus.DRAFT.value and new_status != BOMStatus.ARCHIVED.value:
            self.assert_complete(bom)

        if new_status == BOMStatus.ACTIVE.value:
            self.check_sub_assembly_statuses(
                [c.component_bom_id for c in bom.components if c.is_sub_assembly]
            )
        elif new_status == BOMStatus.ARCHIVED.value:
            self.integrity.can_archive(bom.id)

    @staticmethod
    def assert_complete(bom: BOM) -> None:
        """A BOM outside draft needs at least one component and one operation."""
        if not bom.components:
            raise ValidationError(
                "BOM must have at least one component to leave draft",
                field="components",
            )
        if not bom.operations:
            raise ValidationError(
                "BOM must have at least one operation to leave draft",
                field="operations",
            )

    def check_sub_assembly_statuses(self, sub_assembly_ids: List[int]) -> None:
        """An active BOM may only use active or inactive sub-assemblies."""
        if not sub_assembly_ids or not get_settings().BOM_REQUIRE_ACTIVE_SUBASSEMBLIES:
            return
        rows = (
            self.db.query(BOM.id, BOM.status)
            .filter(BOM.id.in_(set(sub_assembly_ids)))
            .all()
        )
        unusable = sorted(bom_id for bom_id, status in rows if status not in USABLE_SUBASSEMBLY_STATUSES)
        if unusable:
            raise BusinessRuleError(
                "An active BOM cannot use draft or archived sub-assemblies: "
                + ", ".join(str(i) for i in unusable),
                rule="active_subassembly",
                details={"bom_ids": unusable},
            )

    def transition(self, bom: BOM, new_status: Union[str, BOMStatus], user: User) -> str:
        """
        Apply a status change in memory. Caller commits.

        Returns:
            The previous status
        """
        new_status = _status_value(new_status)
        self.assert_can_change_status(bom, new_status, user)
        self.validate_transition(bom, new_status)

        old_status = bom.status
        if old_status != new_status:
            bom.status = new_status
            logger.info(
                "BOM status changed",
                extra={
                    "bom_id": bom.id,
                    "old_status": old_status,
                    "new_status": new_status,
                    "user_id": user.id,
                },
            )
        return old_status
