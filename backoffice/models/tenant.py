"""Tenant model - each vendor account selling on the marketplace."""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from backoffice.database import Base


class TenantStatus:
    """Vendor onboarding states."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    DISABLED = 'disabled'


class Tenant(Base):
    """Tenant model - the partition boundary for every record in the core."""

    __tablename__ = 'tenant'

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    display_name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default=TenantStatus.PENDING)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_usable(self):
        """Only active, approved vendors may operate on inventory."""
        return self.active and self.status == TenantStatus.APPROVED

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', status='{self.status}')>"
