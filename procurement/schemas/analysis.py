"""
Schemas pour le contrat du port d'extraction IA
"""

import math

from pydantic import BaseModel, Field, AliasChoices, field_validator


class ItemPrice(BaseModel):
    """Prix proposé pour un article du RFP"""
    name: str = Field(..., validation_alias=AliasChoices("name", "itemName", "item_name"))
    price: float | None = None


class ProposalAnalysis(BaseModel):
    """
    Sortie structurée attendue du modèle.
    Le score n'est volontairement pas borné ici : le moteur le borne lui-même.
    """
    proposed_price: float | None = Field(
        None, allow_inf_nan=False, validation_alias=AliasChoices("proposedPrice", "proposed_price")
    )
    delivery_days: int | None = Field(None, validation_alias=AliasChoices("deliveryDays", "delivery_days"))
    warranty: str | None = None
    payment_terms: str | None = Field(None, validation_alias=AliasChoices("paymentTerms", "payment_terms"))
    item_pricing: list[ItemPrice] = Field(
        default_factory=list, validation_alias=AliasChoices("itemPricing", "item_pricing")
    )
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    score: float = Field(..., allow_inf_nan=False)
    recommendation: str = ""

    @field_validator("delivery_days", mode="before")
    @classmethod
    def _round_up_days(cls, value):
        # Jours fractionnaires arrondis au jour supérieur
        if isinstance(value, float) and math.isfinite(value):
            return math.ceil(value)
        return value


class RFPItemSummary(BaseModel):
    name: str
    quantity: int
    specifications: dict = Field(default_factory=dict)


class RFPSummary(BaseModel):
    """Résumé normalisé du RFP transmis au modèle"""
    title: str
    description: str | None = None
    budget: float | None = None
    delivery_deadline: str | None = None
    payment_terms: str | None = None
    warranty: str | None = None
    items: list[RFPItemSummary] = Field(default_factory=list)
