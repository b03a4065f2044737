"""
Unit tests for BOM lifecycle rules: transitions, entry conditions and
per-status permissions.
"""
import pytest

from app.core.status_config import get_allowed_bom_transitions, is_valid_bom_transition
from app.exceptions import (
    BusinessRuleError,
    InvalidStateError,
    PermissionDeniedError,
    ReferentialIntegrityError,
    ValidationError,
)
from app.services.bom_lifecycle import BOMLifecycleManager
from tests.factories import create_test_bom


def complete_bom(db, user, item, **kwargs):
    """A BOM with one component and one operation"""
    kwargs.setdefault("components", [{"item": item}])
    kwargs.setdefault("operations", [{"minutes": 10, "rate": 20}])
    return create_test_bom(db, user, **kwargs)


class TestTransitionMap:

    @pytest.mark.parametrize("current,new", [
        ("draft", "active"),
        ("draft", "archived"),
        ("active", "inactive"),
        ("active", "archived"),
        ("inactive", "active"),
        ("inactive", "archived"),
        ("archived", "inactive"),
        ("active", "active"),
    ])
    def test_allowed(self, current, new):
        assert is_valid_bom_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        ("draft", "inactive"),
        ("active", "draft"),
        ("inactive", "draft"),
        ("archived", "active"),
        ("archived", "draft"),
    ])
    def test_rejected(self, current, new):
        assert not is_valid_bom_transition(current, new)

    def test_allowed_list_is_sorted(self):
        assert get_allowed_bom_transitions("active") == ["archived", "inactive"]
        assert get_allowed_bom_transitions("unknown") == []


class TestValidateTransition:

    def test_invalid_transition_reports_allowed_states(self, db, admin_user, drawer_slide):
        bom = complete_bom(db, admin_user, drawer_slide, status="archived")

        with pytest.raises(InvalidStateError) as exc_info:
            BOMLifecycleManager(db).validate_transition(bom, "active")

        assert exc_info.value.details["allowed_states"] == ["inactive"]

    def test_draft_without_components_cannot_activate(self, db, admin_user):
        bom = create_test_bom(db, admin_user, operations=[{"minutes": 10}])

        with pytest.raises(ValidationError) as exc_info:
            BOMLifecycleManager(db).validate_transition(bom, "active")

        assert exc_info.value.details["field"] == "components"

    def test_draft_without_operations_cannot_activate(self, db, admin_user, drawer_slide):
        bom = create_test_bom(db, admin_user, components=[{"item": drawer_slide}])

        with pytest.raises(ValidationError) as exc_info:
            BOMLifecycleManager(db).validate_transition(bom, "active")

        assert exc_info.value.details["field"] == "operations"

    def test_empty_draft_can_be_discarded(self, db, admin_user):
        bom = create_test_bom(db, admin_user)

        BOMLifecycleManager(db).validate_transition(bom, "archived")

    def test_activation_needs_released_sub_assemblies(self, db, admin_user, drawer_slide):
        sub = complete_bom(db, admin_user, drawer_slide, name="Draft Sub")
        parent = complete_bom(db, admin_user, drawer_slide, name="Parent",
                              components=[{"bom": sub}])

        with pytest.raises(BusinessRuleError) as exc_info:
            BOMLifecycleManager(db).validate_transition(parent, "active")

        assert exc_info.value.details["rule"] == "active_subassembly"
        assert exc_info.value.details["bom_ids"] == [sub.id]

    def test_inactive_sub_assembly_is_usable(self, db, admin_user, drawer_slide):
        sub = complete_bom(db, admin_user, drawer_slide, name="Shelved Sub", status="inactive")
        parent = complete_bom(db, admin_user, drawer_slide, name="Parent",
                              components=[{"bom": sub}])

        BOMLifecycleManager(db).validate_transition(parent, "active")

    def test_archive_blocked_while_used(self, db, admin_user, drawer_slide):
        sub = complete_bom(db, admin_user, drawer_slide, name="Sub", status="active")
        complete_bom(db, admin_user, drawer_slide, name="Parent", status="active",
                     components=[{"bom": sub}])

        with pytest.raises(ReferentialIntegrityError):
            BOMLifecycleManager(db).validate_transition(sub, "archived")


class TestPermissions:

    def test_creator_may_edit_own_draft(self, db, regular_user):
        bom = create_test_bom(db, regular_user)
        BOMLifecycleManager(db).assert_can_edit(bom, regular_user)

    def test_other_user_may_not_edit_draft(self, db, regular_user, other_user):
        bom = create_test_bom(db, regular_user)

        with pytest.raises(PermissionDeniedError):
            BOMLifecycleManager(db).assert_can_edit(bom, other_user)

    def test_creator_may_not_edit_active(self, db, regular_user, manager_user, drawer_slide):
        bom = complete_bom(db, regular_user, drawer_slide, status="active")
        manager = BOMLifecycleManager(db)

        with pytest.raises(PermissionDeniedError):
            manager.assert_can_edit(bom, regular_user)
        manager.assert_can_edit(bom, manager_user)

    def test_archived_is_read_only_for_everyone(self, db, admin_user):
        bom = create_test_bom(db, admin_user, status="archived")

        with pytest.raises(InvalidStateError):
            BOMLifecycleManager(db).assert_can_edit(bom, admin_user)

    def test_archived_may_be_deleted_by_manager(self, db, regular_user, manager_user):
        bom = create_test_bom(db, regular_user, status="archived")
        manager = BOMLifecycleManager(db)

        manager.assert_can_delete(bom, manager_user)
        with pytest.raises(PermissionDeniedError):
            manager.assert_can_delete(bom, regular_user)

    def test_creator_may_activate_own_draft(self, db, regular_user, other_user):
        bom = create_test_bom(db, regular_user)
        manager = BOMLifecycleManager(db)

        manager.assert_can_change_status(bom, "active", regular_user)
        with pytest.raises(PermissionDeniedError):
            manager.assert_can_change_status(bom, "active", other_user)

    def test_only_managers_deactivate(self, db, regular_user, manager_user, drawer_slide):
        bom = complete_bom(db, regular_user, drawer_slide, status="active")
        manager = BOMLifecycleManager(db)

        with pytest.raises(PermissionDeniedError):
            manager.assert_can_change_status(bom, "inactive", regular_user)
        manager.assert_can_change_status(bom, "inactive", manager_user)


class TestTransition:

    def test_applies_status_and_returns_previous(self, db, admin_user, drawer_slide):
        bom = complete_bom(db, admin_user, drawer_slide)

        previous = BOMLifecycleManager(db).transition(bom, "active", admin_user)

        assert previous == "draft"
        assert bom.status == "active"

    def test_same_status_is_a_no_op(self, db, admin_user, drawer_slide):
        bom = complete_bom(db, admin_user, drawer_slide, status="active")

        previous = BOMLifecycleManager(db).transition(bom, "active", admin_user)

        assert previous == "active"
        assert bom.status == "active"
