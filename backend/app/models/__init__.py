"""Database models"""
from app.models.inventory import Unit, InventoryItem
from app.models.user import User
from app.models.bom import BOM, BOMComponent, BOMOperation
from app.models.audit import AuditLog

__all__ = [
    # Collaborator tables (read-only for the BOM engine)
    "Unit",
    "InventoryItem",
    # Users
    "User",
    # Manufacturing
    "BOM",
    "BOMComponent",
    "BOMOperation",
    # Audit
    "AuditLog",
]
