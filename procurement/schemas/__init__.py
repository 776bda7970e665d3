"""
Schemas Pydantic - Validation et sérialisation
"""
from procurement.schemas.analysis import (
    ItemPrice, ProposalAnalysis, RFPItemSummary, RFPSummary
)
from procurement.schemas.proposal import (
    ProposalCreate, ProposalStatusUpdate, ProposalResponse, VendorSummary
)
