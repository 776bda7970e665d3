# procurement/routers/proposals.py
"""
Endpoints pour les propositions fournisseurs
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from procurement.database import get_db
from procurement.exceptions import AnalysisFailed, DuplicateProposal, NotFound
from procurement.schemas.proposal import ProposalCreate, ProposalResponse, ProposalStatusUpdate
from procurement.services.analysis_queue import get_analysis_queue
from procurement.services.proposal_service import ProposalService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Propositions"])


def get_proposal_service(db: Session = Depends(get_db)) -> ProposalService:
    return ProposalService(db, queue=get_analysis_queue())


@router.post(
    "/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Soumettre une proposition",
)
def create_proposal(
    data: ProposalCreate,
    service: ProposalService = Depends(get_proposal_service),
):
    """POST /proposals - soumission directe, l'analyse part en arrière-plan"""
    try:
        return service.create(
            rfp_id=data.rfp_id,
            vendor_id=data.vendor_id,
            raw_content=data.raw_content,
            email_subject=data.email_subject,
            strict=True,
        )
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DuplicateProposal as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get(
    "/proposals/{proposal_id}",
    response_model=ProposalResponse,
    summary="Détail d'une proposition",
)
def get_proposal(
    proposal_id: str,
    service: ProposalService = Depends(get_proposal_service),
):
    proposal = service.get_by_id(proposal_id)
    if not proposal:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Proposition #{proposal_id} non trouvée",
        )
    return proposal


@router.patch(
    "/proposals/{proposal_id}/status",
    response_model=ProposalResponse,
    summary="Modifier le statut d'une proposition",
)
def update_proposal_status(
    proposal_id: str,
    data: ProposalStatusUpdate,
    service: ProposalService = Depends(get_proposal_service),
):
    try:
        return service.update_status(
            proposal_id,
            status=data.status,
            is_recommended=data.is_recommended,
        )
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post(
    "/proposals/{proposal_id}/reanalyze",
    response_model=ProposalResponse,
    summary="Relancer l'analyse IA",
)
def reanalyze_proposal(
    proposal_id: str,
    service: ProposalService = Depends(get_proposal_service),
):
    try:
        return service.analyze(proposal_id)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AnalysisFailed as e:
        logger.error(f"Re-analyse echouee pour {proposal_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.delete(
    "/proposals/{proposal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Supprimer une proposition",
)
def delete_proposal(
    proposal_id: str,
    service: ProposalService = Depends(get_proposal_service),
):
    try:
        service.delete(proposal_id)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get(
    "/rfps/{rfp_id}/proposals",
    response_model=list[ProposalResponse],
    summary="Propositions d'un RFP",
    description="Recommandée en premier, puis score décroissant.",
)
def list_rfp_proposals(
    rfp_id: str,
    service: ProposalService = Depends(get_proposal_service),
):
    return service.get_by_rfp(rfp_id)


@router.get(
    "/rfps/{rfp_id}/proposals/recommended",
    response_model=ProposalResponse | None,
    summary="Proposition recommandée d'un RFP",
)
def get_recommended_proposal(
    rfp_id: str,
    service: ProposalService = Depends(get_proposal_service),
):
    return service.get_recommended(rfp_id)
