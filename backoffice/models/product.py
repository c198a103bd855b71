"""Product model."""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from backoffice.database import Base


class Product(Base):
    """Catalog product; physical units of it are tracked individually."""

    __tablename__ = 'product'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    product_code = Column(String(64), nullable=True)
    hsn_code = Column(String(20), nullable=True)
    sale_price = Column(Numeric(12, 2), nullable=False, default=0)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tenant = relationship('Tenant')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', code='{self.product_code}')>"
