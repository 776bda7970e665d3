"""
Modèles RFP et RFPItem - Demandes de proposition envoyées aux fournisseurs
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Text, JSON, ForeignKey
)
from sqlalchemy.orm import relationship
from procurement.database import Base


class RFPStatus:
    DRAFT = "draft"
    SENT = "sent"
    CLOSED = "closed"


class RFP(Base):
    __tablename__ = "rfps"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(500), nullable=False, index=True)
    description = Column(Text, nullable=True)
    raw_input = Column(Text, nullable=False, default="", comment="Demande initiale en langage naturel")
    budget = Column(Numeric(14, 2), nullable=True)
    delivery_deadline = Column(Date, nullable=True)
    payment_terms = Column(String(255), nullable=True)
    warranty = Column(String(255), nullable=True)
    additional_requirements = Column(JSON, nullable=False, default=list)
    status = Column(
        String(20),
        nullable=False,
        default=RFPStatus.DRAFT,
        index=True,
        comment="draft | sent | closed",
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relations
    items = relationship(
        "RFPItem",
        back_populates="rfp",
        cascade="all, delete-orphan",
        order_by="RFPItem.position",
    )
    proposals = relationship("Proposal", back_populates="rfp", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<RFP(id={self.id}, title='{self.title[:50]}', status='{self.status}')>"


class RFPItem(Base):
    __tablename__ = "rfp_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rfp_id = Column(
        String(36),
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    specifications = Column(JSON, nullable=False, default=dict)

    rfp = relationship("RFP", back_populates="items")

    def __repr__(self):
        return f"<RFPItem(name='{self.name}', quantity={self.quantity})>"
