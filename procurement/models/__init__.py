"""
Modèles SQLAlchemy - Import centralisé
"""
from procurement.models.rfp import RFP, RFPItem, RFPStatus
from procurement.models.vendor import Vendor, VendorCategory
from procurement.models.proposal import Proposal, ProposalStatus

__all__ = [
    "RFP", "RFPItem", "RFPStatus",
    "Vendor", "VendorCategory",
    "Proposal", "ProposalStatus",
]
