"""Status Configuration and Transition Rules

This module defines valid status values and allowed transitions for
Bills of Materials, plus the vocabulary shared by BOM operations and
user roles. Status transitions are validated to prevent invalid state
changes.
"""
from enum import Enum
from typing import Dict, List, Set


# =============================================================================
# BOM Status
# =============================================================================

class BOMStatus(str, Enum):
    """Valid status values for Bills of Materials"""
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


# Allowed transitions: current_status -> set of allowed next statuses
BOM_STATUS_TRANSITIONS: Dict[str, Set[str]] = {
    BOMStatus.DRAFT: {
        BOMStatus.ACTIVE,
        BOMStatus.ARCHIVED,  # Discard a draft
    },
    BOMStatus.ACTIVE: {
        BOMStatus.INACTIVE,
        BOMStatus.ARCHIVED,
    },
    BOMStatus.INACTIVE: {
        BOMStatus.ACTIVE,
        BOMStatus.ARCHIVED,
    },
    BOMStatus.ARCHIVED: {
        BOMStatus.INACTIVE,  # Restore; must be re-activated explicitly
    },
}

# Statuses a sub-assembly may be in while referenced by an active BOM
USABLE_SUBASSEMBLY_STATUSES: Set[str] = {
    BOMStatus.ACTIVE.value,
    BOMStatus.INACTIVE.value,
}


def get_allowed_bom_transitions(current_status: str) -> List[str]:
    """Get list of allowed next statuses for a BOM"""
    return sorted(s.value for s in BOM_STATUS_TRANSITIONS.get(current_status, set()))


def is_valid_bom_transition(current_status: str, new_status: str) -> bool:
    """Check if a BOM status transition is valid"""
    if current_status == new_status:
        return True  # No change is always valid
    allowed = BOM_STATUS_TRANSITIONS.get(current_status, set())
    return new_status in allowed


# =============================================================================
# Operation Skill Level
# =============================================================================

class SkillLevel(str, Enum):
    """Skill required for a BOM operation"""
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


# =============================================================================
# Component Type
# =============================================================================

class ComponentType(str, Enum):
    """Discriminator for BOM component lines"""
    ITEM = "item"
    BOM = "bom"


# =============================================================================
# User Roles
# =============================================================================

class UserRole(str, Enum):
    """Roles supplied by the upstream identity provider"""
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


PRIVILEGED_ROLES: Set[str] = {UserRole.ADMIN.value, UserRole.MANAGER.value}
