"""
Modèle Proposal - Réponses fournisseurs analysées par l'IA
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, JSON, ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from procurement.database import Base


class ProposalStatus:
    PENDING = "pending"
    ANALYZED = "analyzed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    ALL = (PENDING, ANALYZED, ACCEPTED, REJECTED)


class Proposal(Base):
    __tablename__ = "proposals"
    __table_args__ = (
        UniqueConstraint("rfp_id", "vendor_id", name="uq_proposal_rfp_vendor"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    rfp_id = Column(
        String(36),
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    vendor_id = Column(
        String(36),
        ForeignKey("vendors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    raw_content = Column(Text, nullable=False, comment="Corps de l'email ou soumission directe")
    email_subject = Column(String(1000), nullable=True)
    status = Column(
        String(20),
        nullable=False,
        default=ProposalStatus.PENDING,
        index=True,
        comment="pending | analyzed | accepted | rejected",
    )

    # Champs renseignés par l'analyse
    proposed_price = Column(Float, nullable=True)
    delivery_days = Column(Integer, nullable=True)
    warranty = Column(String(500), nullable=True)
    payment_terms = Column(String(500), nullable=True)
    item_pricing = Column(JSON, nullable=False, default=list)
    strengths = Column(JSON, nullable=False, default=list)
    weaknesses = Column(JSON, nullable=False, default=list)
    score = Column(Float, nullable=True, comment="Score 0-100")
    recommendation = Column(Text, nullable=True)
    analysis_order = Column(
        Integer,
        nullable=True,
        comment="Rang de première analyse au sein du RFP (départage des ex aequo)",
    )
    analyzed_at = Column(DateTime, nullable=True)

    is_recommended = Column(Boolean, nullable=False, default=False, index=True)
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relations
    rfp = relationship("RFP", back_populates="proposals")
    vendor = relationship("Vendor", back_populates="proposals")

    def __repr__(self):
        return (
            f"<Proposal(id={self.id}, rfp_id={self.rfp_id}, status='{self.status}', "
            f"score={self.score}, recommended={self.is_recommended})>"
        )
