"""
Modèles Vendor et VendorCategory - Fournisseurs destinataires des RFP
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey
)
from sqlalchemy.orm import relationship, validates
from procurement.database import Base


class VendorCategory(Base):
    __tablename__ = "vendor_categories"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False, unique=True)

    vendors = relationship("Vendor", back_populates="category")

    def __repr__(self):
        return f"<VendorCategory(name='{self.name}')>"


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False, index=True)
    email = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Toujours stocké en minuscules",
    )
    is_active = Column(Boolean, nullable=False, default=True)
    category_id = Column(
        String(36),
        ForeignKey("vendor_categories.id"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relations
    category = relationship("VendorCategory", back_populates="vendors")
    proposals = relationship("Proposal", back_populates="vendor", cascade="all, delete-orphan")

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    def __repr__(self):
        return f"<Vendor(id={self.id}, email='{self.email}')>"
