"""
User model

Identities are issued by the upstream auth service; this table mirrors
the fields the BOM module needs for ownership and edit permissions.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from app.core.status_config import PRIVILEGED_ROLES
from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)

    role = Column(String(20), default="user", nullable=False)  # admin, manager, user
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=False), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"

    @property
    def is_privileged(self) -> bool:
        """Admins and managers may edit released BOMs."""
        return self.role in PRIVILEGED_ROLES
