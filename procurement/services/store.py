# procurement/services/store.py
"""
Accès aux propositions, RFP et fournisseurs.
Toutes les requêtes passent par la session SQLAlchemy fournie.
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from procurement.models.proposal import Proposal, ProposalStatus
from procurement.models.rfp import RFP, RFPStatus
from procurement.models.vendor import Vendor

logger = logging.getLogger(__name__)


class ProposalStore:
    """Adaptateur de persistance du moteur de propositions"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    #  RFP / fournisseurs
    # ------------------------------------------------------------------

    def get_rfp(self, rfp_id: str, with_items: bool = False) -> RFP | None:
        query = self.db.query(RFP).filter(RFP.id == rfp_id)
        if with_items:
            query = query.options(selectinload(RFP.items))
        return query.first()

    def lock_rfp(self, rfp_id: str) -> RFP | None:
        """Verrou ligne sur le RFP pour la durée de la transaction (ignoré par SQLite)"""
        return self.db.query(RFP).filter(RFP.id == rfp_id).with_for_update().first()

    def list_sent_rfps(self) -> list[RFP]:
        """RFP envoyés, les plus récemment modifiés d'abord"""
        return (
            self.db.query(RFP)
            .filter(RFP.status == RFPStatus.SENT)
            .order_by(RFP.updated_at.desc())
            .all()
        )

    def get_vendor(self, vendor_id: str) -> Vendor | None:
        return self.db.get(Vendor, vendor_id)

    def find_vendor_by_email(self, email: str) -> Vendor | None:
        if not email:
            return None
        return (
            self.db.query(Vendor)
            .filter(func.lower(Vendor.email) == email.strip().lower())
            .first()
        )

    # ------------------------------------------------------------------
    #  Propositions
    # ------------------------------------------------------------------

    def get_proposal(self, proposal_id: str, with_vendor: bool = False) -> Proposal | None:
        query = self.db.query(Proposal).filter(Proposal.id == proposal_id)
        if with_vendor:
            query = query.options(joinedload(Proposal.vendor))
        return query.first()

    def find_proposal(self, rfp_id: str, vendor_id: str) -> Proposal | None:
        return (
            self.db.query(Proposal)
            .filter(Proposal.rfp_id == rfp_id, Proposal.vendor_id == vendor_id)
            .first()
        )

    def add_proposal(self, proposal: Proposal) -> Proposal:
        self.db.add(proposal)
        self.db.flush()
        return proposal

    def delete_proposal(self, proposal: Proposal) -> None:
        self.db.delete(proposal)
        self.db.flush()

    def list_by_rfp(self, rfp_id: str) -> list[Proposal]:
        """Vue liste : recommandée d'abord, puis score décroissant"""
        return (
            self.db.query(Proposal)
            .options(joinedload(Proposal.vendor))
            .filter(Proposal.rfp_id == rfp_id)
            .order_by(
                Proposal.is_recommended.desc(),
                Proposal.score.desc().nulls_last(),
                Proposal.received_at.asc(),
            )
            .all()
        )

    def get_recommended(self, rfp_id: str) -> Proposal | None:
        return (
            self.db.query(Proposal)
            .options(joinedload(Proposal.vendor))
            .filter(Proposal.rfp_id == rfp_id, Proposal.is_recommended == True)  # noqa: E712
            .first()
        )

    def ranked_candidates(self, rfp_id: str) -> list[Proposal]:
        """
        Propositions analysées et notées, score décroissant.
        Ex aequo : la première analysée passe devant.
        """
        return (
            self.db.query(Proposal)
            .filter(
                Proposal.rfp_id == rfp_id,
                Proposal.status == ProposalStatus.ANALYZED,
                Proposal.score.isnot(None),
            )
            .order_by(
                Proposal.score.desc(),
                Proposal.analysis_order.asc().nulls_last(),
                Proposal.received_at.asc(),
            )
            .populate_existing()
            .all()
        )

    def next_analysis_order(self, rfp_id: str) -> int:
        current = (
            self.db.query(func.max(Proposal.analysis_order))
            .filter(Proposal.rfp_id == rfp_id)
            .scalar()
        )
        return (current or 0) + 1

    def set_recommended(self, rfp_id: str, proposal_id: str | None) -> None:
        """Efface le drapeau sur tout le RFP puis le pose sur `proposal_id`"""
        self.db.query(Proposal).filter(Proposal.rfp_id == rfp_id).update(
            {Proposal.is_recommended: False}, synchronize_session="fetch"
        )
        if proposal_id is not None:
            self.db.query(Proposal).filter(Proposal.id == proposal_id).update(
                {Proposal.is_recommended: True}, synchronize_session="fetch"
            )
        self.db.flush()
