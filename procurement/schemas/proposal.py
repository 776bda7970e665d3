"""
Schemas pour les propositions
"""

from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field
from procurement.schemas.analysis import ItemPrice


class ProposalCreate(BaseModel):
    """Soumission directe d'une proposition"""
    rfp_id: str = Field(..., description="Identifiant du RFP")
    vendor_id: str = Field(..., description="Identifiant du fournisseur")
    raw_content: str = Field(..., min_length=10, description="Contenu brut de la proposition")
    email_subject: str | None = None


class ProposalStatusUpdate(BaseModel):
    """Surcharge opérateur"""
    status: Literal["pending", "analyzed", "accepted", "rejected"] | None = None
    is_recommended: bool | None = None


class VendorSummary(BaseModel):
    id: str
    name: str
    email: str

    class Config:
        from_attributes = True


class ProposalResponse(BaseModel):
    """Réponse API"""
    id: str
    rfp_id: str
    vendor_id: str
    raw_content: str
    email_subject: str | None = None
    status: str
    proposed_price: float | None = None
    delivery_days: int | None = None
    warranty: str | None = None
    payment_terms: str | None = None
    item_pricing: list[ItemPrice] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    score: float | None = None
    recommendation: str | None = None
    is_recommended: bool = False
    received_at: datetime
    analyzed_at: datetime | None = None
    vendor: VendorSummary | None = None

    class Config:
        from_attributes = True
