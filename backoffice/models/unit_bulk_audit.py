"""
Bulk audit model: one immutable row per bulk unit delete/edit execution.
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum


class BulkOperation(enum.Enum):
    """Auditable bulk operations."""
    DELETE = "DELETE"
    EDIT = "EDIT"


class BulkScopeKind(enum.Enum):
    """How the target set of a bulk operation was chosen."""
    SELECTED = "SELECTED"
    FILTERED = "FILTERED"


from backoffice.database import Base

class UnitBulkAudit(Base):
    """
    Audit record for bulk unit mutations.
    Append-only: rows are inserted once and never updated.
    """
    __tablename__ = 'unit_bulk_audit'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False, index=True)
    operation = Column(SQLEnum(BulkOperation), nullable=False, index=True)
    scope_kind = Column(SQLEnum(BulkScopeKind), nullable=False)
    filter_json = Column(Text)  # serialized UnitFilter, only for FILTERED scopes
    patch_json = Column(Text)  # serialized patch, only for EDIT
    target_count = Column(Integer, nullable=False, default=0)
    verified_in_target = Column(Integer, nullable=False, default=0)
    affected_count = Column(Integer, nullable=False, default=0)  # rows actually deleted/updated
    skipped_verified_units = Column(Integer, nullable=False, default=0)
    chunks_applied = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=True)
    actor_name = Column(String(200))
    actor_user_id = Column(String(64))
    is_admin_override = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    tenant = relationship('Tenant')

    def to_dict(self):
        return {
            'id': self.id,
            'operation': self.operation.value,
            'scope_kind': self.scope_kind.value,
            'filter_json': self.filter_json,
            'target_count': self.target_count,
            'verified_in_target': self.verified_in_target,
            'affected_count': self.affected_count,
            'skipped_verified_units': self.skipped_verified_units,
            'chunks_applied': self.chunks_applied,
            'completed': self.completed,
            'actor_name': self.actor_name,
            'is_admin_override': self.is_admin_override,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<UnitBulkAudit {self.operation.value} {self.affected_count}/{self.target_count} by {self.actor_name}>"
