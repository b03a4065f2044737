"""
Audit Trail Model

Records every create/update/delete/status change of a BOM with the
before and after values, for change history.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from datetime import datetime

from app.db.base import Base


class AuditLog(Base):
    """Audit trail entry"""
    __tablename__ = "audit_trail"

    id = Column(Integer, primary_key=True, index=True)
    table_name = Column(String(100), nullable=False, index=True)
    record_id = Column(Integer, nullable=False, index=True)
    action = Column(String(20), nullable=False)  # INSERT, UPDATE, DELETE, STATUS

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    # Note: no FK cascade; audit rows outlive the user record
    user_id = Column(Integer, ForeignKey("users.id", ondelete="NO ACTION"), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.table_name}#{self.record_id}>"
