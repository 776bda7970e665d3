# procurement/services/proposal_service.py
"""
Cycle de vie des propositions : création -> analyse -> recommandation.

Garantit qu'un RFP a au plus une proposition recommandée, celle au
meilleur score parmi les propositions analysées (ex aequo : la première
analysée conserve la recommandation).
"""

import logging
import math
import threading
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement.exceptions import AnalysisFailed, DuplicateProposal, NotFound
from procurement.models.proposal import Proposal, ProposalStatus
from procurement.services.ai_analyzer import ProposalAnalyzer, summarize_rfp
from procurement.services.store import ProposalStore

logger = logging.getLogger(__name__)


class RFPLockRegistry:
    """Un verrou par RFP, créé à la demande"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, rfp_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(rfp_id)
            if lock is None:
                lock = self._locks[rfp_id] = threading.Lock()
            return lock


# Partagé par toutes les sessions du processus
rfp_locks = RFPLockRegistry()


def clamp_score(score: float | None) -> float | None:
    """Borne le score dans [0, 100] ; None pour une valeur non finie"""
    if score is None or not math.isfinite(score):
        return None
    return max(0.0, min(100.0, float(score)))


class ProposalService:
    """Gestionnaire du cycle de vie des propositions"""

    def __init__(
        self,
        db: Session,
        analyzer: ProposalAnalyzer | None = None,
        queue=None,
        locks: RFPLockRegistry | None = None,
    ):
        self.db = db
        self.store = ProposalStore(db)
        self._analyzer = analyzer
        self.queue = queue
        self.locks = locks or rfp_locks

    @property
    def analyzer(self) -> ProposalAnalyzer:
        if self._analyzer is None:
            self._analyzer = ProposalAnalyzer()
        return self._analyzer

    @contextmanager
    def _rfp_section(self, rfp_id: str):
        """
        Section critique par RFP : verrou processus + verrou ligne en base,
        commit à la sortie, rollback en cas d'erreur.
        """
        with self.locks.get(rfp_id):
            try:
                self.store.lock_rfp(rfp_id)
                yield
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    # ------------------------------------------------------------------
    #  Création
    # ------------------------------------------------------------------

    def create_or_get(
        self,
        rfp_id: str,
        vendor_id: str,
        raw_content: str,
        email_subject: str | None = None,
        received_at: datetime | None = None,
    ) -> tuple[Proposal, bool]:
        """
        Crée une proposition `pending` et planifie son analyse.
        Retourne (proposition, créée). Si le couple (RFP, fournisseur) a déjà
        une proposition, elle est retournée telle quelle avec créée=False.
        """
        if self.store.get_rfp(rfp_id) is None:
            raise NotFound("RFP", rfp_id)
        if self.store.get_vendor(vendor_id) is None:
            raise NotFound("Vendor", vendor_id)

        existing = self.store.find_proposal(rfp_id, vendor_id)
        if existing is not None:
            logger.info(f"Proposition deja existante pour rfp={rfp_id} vendor={vendor_id} (id={existing.id})")
            return existing, False

        proposal = Proposal(
            rfp_id=rfp_id,
            vendor_id=vendor_id,
            raw_content=raw_content,
            email_subject=email_subject,
            status=ProposalStatus.PENDING,
            is_recommended=False,
            received_at=received_at or datetime.utcnow(),
        )
        try:
            self.store.add_proposal(proposal)
            self.db.commit()
        except IntegrityError:
            # Course perdue contre une création concurrente du même couple
            self.db.rollback()
            existing = self.store.find_proposal(rfp_id, vendor_id)
            if existing is None:
                raise
            logger.info(f"Creation concurrente detectee pour rfp={rfp_id} vendor={vendor_id}")
            return existing, False

        self.db.refresh(proposal)
        logger.info(f"📥 Proposition creee: id={proposal.id} rfp={rfp_id} vendor={vendor_id}")

        self._schedule_analysis(proposal.id)
        return proposal, True

    def create(
        self,
        rfp_id: str,
        vendor_id: str,
        raw_content: str,
        email_subject: str | None = None,
        strict: bool = False,
        received_at: datetime | None = None,
    ) -> Proposal:
        """
        Variante simple de `create_or_get`.
        strict=True (soumission directe) : un doublon lève DuplicateProposal.
        """
        proposal, created = self.create_or_get(
            rfp_id, vendor_id, raw_content, email_subject, received_at=received_at
        )
        if not created and strict:
            raise DuplicateProposal(proposal)
        return proposal

    def _schedule_analysis(self, proposal_id: str) -> None:
        if self.queue is None:
            logger.warning(f"Aucune file d'analyse configuree, proposition {proposal_id} reste pending")
            return
        try:
            self.queue.enqueue(proposal_id)
        except Exception as e:
            logger.error(f"Impossible de planifier l'analyse de {proposal_id}: {e}")

    # ------------------------------------------------------------------
    #  Analyse
    # ------------------------------------------------------------------

    def analyze(self, proposal_id: str) -> Proposal:
        """
        Analyse IA d'une proposition puis recalcul de la recommandation.
        En cas d'échec (AnalysisFailed), rien n'est écrit : la proposition reste pending.
        Ré-exécutable : une nouvelle analyse écrase simplement les champs.
        """
        proposal = self.store.get_proposal(proposal_id)
        if proposal is None:
            raise NotFound("Proposal", proposal_id)
        rfp = self.store.get_rfp(proposal.rfp_id, with_items=True)
        if rfp is None:
            raise NotFound("RFP", proposal.rfp_id)

        rfp_id = rfp.id
        summary = summarize_rfp(rfp)
        raw_content = proposal.raw_content
        # Libère la transaction de lecture pendant l'appel IA
        self.db.rollback()

        logger.info(f"🤖 Analyse proposition {proposal_id} (rfp={rfp_id})")
        analysis = self.analyzer.analyze(summary, raw_content)

        score = clamp_score(analysis.score)
        if score is None:
            raise AnalysisFailed(f"Score IA non exploitable pour {proposal_id}: {analysis.score!r}")
        if score != analysis.score:
            logger.info(f"Score IA {analysis.score} borne a {score} pour {proposal_id}")

        with self._rfp_section(rfp_id):
            proposal = self.store.get_proposal(proposal_id)
            if proposal is None:
                raise NotFound("Proposal", proposal_id)

            proposal.proposed_price = analysis.proposed_price
            proposal.delivery_days = analysis.delivery_days
            proposal.warranty = analysis.warranty
            proposal.payment_terms = analysis.payment_terms
            proposal.item_pricing = [item.model_dump() for item in analysis.item_pricing]
            proposal.strengths = list(analysis.strengths)
            proposal.weaknesses = list(analysis.weaknesses)
            proposal.score = score
            proposal.recommendation = analysis.recommendation
            proposal.status = ProposalStatus.ANALYZED
            proposal.analyzed_at = datetime.utcnow()
            if proposal.analysis_order is None:
                proposal.analysis_order = self.store.next_analysis_order(rfp_id)
            self.db.flush()

            self._recompute_locked(rfp_id)

        self.db.refresh(proposal)
        logger.info(f"✅ Proposition {proposal_id} analysee (score={proposal.score})")
        return proposal

    # ------------------------------------------------------------------
    #  Recommandation
    # ------------------------------------------------------------------

    def _recompute_locked(self, rfp_id: str) -> Proposal | None:
        candidates = self.store.ranked_candidates(rfp_id)
        top = candidates[0] if candidates else None
        self.store.set_recommended(rfp_id, top.id if top else None)
        return top

    def recompute_recommendation(self, rfp_id: str) -> Proposal | None:
        """
        Recalcule la proposition recommandée du RFP, de façon atomique.
        Les erreurs sont propagées à l'appelant.
        """
        with self._rfp_section(rfp_id):
            top = self._recompute_locked(rfp_id)
        if top is not None:
            logger.info(f"⭐ Recommandation rfp={rfp_id}: proposition {top.id} (score={top.score})")
        else:
            logger.info(f"Aucune proposition recommandable pour rfp={rfp_id}")
        return top

    # ------------------------------------------------------------------
    #  Surcharge opérateur / suppression
    # ------------------------------------------------------------------

    def update_status(
        self,
        proposal_id: str,
        status: str | None = None,
        is_recommended: bool | None = None,
    ) -> Proposal:
        """
        Surcharge opérateur, sans nouvelle notation.
        - quitter `analyzed` retire la recommandation et la recalcule sur le RFP
        - is_recommended=True n'est accepté que pour une proposition analysée
        """
        proposal = self.store.get_proposal(proposal_id)
        if proposal is None:
            raise NotFound("Proposal", proposal_id)
        if status is not None and status not in ProposalStatus.ALL:
            raise ValueError(f"Statut inconnu: {status}")

        rfp_id = proposal.rfp_id
        with self._rfp_section(rfp_id):
            proposal = self.store.get_proposal(proposal_id)
            if proposal is None:
                raise NotFound("Proposal", proposal_id)

            previous_status = proposal.status
            if status is not None:
                proposal.status = status
            self.db.flush()

            analyzed = proposal.status == ProposalStatus.ANALYZED
            if is_recommended and not analyzed:
                logger.warning(f"Recommandation ignoree pour {proposal.id}: statut '{proposal.status}'")

            if is_recommended and analyzed:
                self.store.set_recommended(rfp_id, proposal.id)
                logger.info(f"Recommandation forcee par operateur: {proposal.id}")
            elif proposal.status != previous_status:
                self._recompute_locked(rfp_id)
            elif is_recommended is False and proposal.is_recommended:
                proposal.is_recommended = False
                self.db.flush()

        self.db.refresh(proposal)
        return proposal

    def delete(self, proposal_id: str) -> None:
        """Supprime la proposition puis recalcule la recommandation du RFP"""
        proposal = self.store.get_proposal(proposal_id)
        if proposal is None:
            raise NotFound("Proposal", proposal_id)

        rfp_id = proposal.rfp_id
        with self._rfp_section(rfp_id):
            proposal = self.store.get_proposal(proposal_id)
            if proposal is None:
                raise NotFound("Proposal", proposal_id)
            self.store.delete_proposal(proposal)
            self._recompute_locked(rfp_id)

        logger.info(f"🗑️ Proposition {proposal_id} supprimee (rfp={rfp_id})")

    # ------------------------------------------------------------------
    #  Lecture
    # ------------------------------------------------------------------

    def get_by_id(self, proposal_id: str) -> Proposal | None:
        return self.store.get_proposal(proposal_id, with_vendor=True)

    def get_by_rfp(self, rfp_id: str) -> list[Proposal]:
        return self.store.list_by_rfp(rfp_id)

    def get_recommended(self, rfp_id: str) -> Proposal | None:
        return self.store.get_recommended(rfp_id)
