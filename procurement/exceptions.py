# procurement/exceptions.py
"""
Erreurs métier du moteur d'ingestion et de recommandation.
"""


class ProcurementError(Exception):
    """Base de toutes les erreurs du moteur"""


class NotFound(ProcurementError):
    """RFP, fournisseur ou proposition introuvable"""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} #{entity_id} introuvable")


class DuplicateProposal(ProcurementError):
    """Une proposition existe déjà pour ce couple (RFP, fournisseur)"""

    def __init__(self, existing):
        self.existing = existing
        super().__init__(
            f"Proposition déjà reçue pour rfp={existing.rfp_id} vendor={existing.vendor_id} "
            f"(id={existing.id})"
        )


class NoVendorMatch(ProcurementError):
    """L'expéditeur n'est pas un fournisseur connu"""


class NoRFPMatch(ProcurementError):
    """Aucun RFP ne correspond au sujet de l'email"""


class AnalysisFailed(ProcurementError):
    """Échec de l'appel IA ou réponse non exploitable"""


class ConnectionFailed(ProcurementError):
    """Impossible d'ouvrir la session sur la boîte de réception"""


class ParseFailed(ProcurementError):
    """Message illisible"""
