# procurement/services/matcher.py
"""
Rapprochement email entrant -> (fournisseur, RFP).
Heuristiques : adresse de l'expéditeur, puis sujet de l'email.
"""

import logging
import re
from dataclasses import dataclass

from procurement.exceptions import NoRFPMatch, NoVendorMatch
from procurement.models.rfp import RFP
from procurement.models.vendor import Vendor
from procurement.services.store import ProposalStore

logger = logging.getLogger(__name__)

# Préfixes de réponse / transfert, éventuellement répétés ("Re: Fwd: RE:")
_REPLY_PREFIX = re.compile(r"^(?:\s*(?:re|fwd?|fw)\s*:\s*)+", re.IGNORECASE)
_RFP_REFERENCE = re.compile(r"\bRFP[-_]?([a-zA-Z0-9-]+)", re.IGNORECASE)


@dataclass
class EmailMatch:
    vendor: Vendor
    rfp: RFP
    strategy: str  # reference | title | single_candidate


def clean_subject(subject: str | None) -> str:
    if not subject:
        return ""
    return _REPLY_PREFIX.sub("", subject).strip()


def extract_rfp_reference(subject: str) -> str | None:
    """'Re: RFP-abc123 quote' -> 'abc123'"""
    match = _RFP_REFERENCE.search(subject or "")
    return match.group(1) if match else None


def match_vendor(store: ProposalStore, sender: str) -> Vendor:
    vendor = store.find_vendor_by_email(sender)
    if vendor is None:
        raise NoVendorMatch(f"Aucun fournisseur pour l'adresse {sender!r}")
    return vendor


def match_rfp(store: ProposalStore, subject: str) -> tuple[RFP, str]:
    """
    Résolution du RFP, première stratégie gagnante :
    1. référence explicite RFP-<id> dans le sujet
    2. inclusion du titre dans le sujet (ou l'inverse) parmi les RFP envoyés
    3. un seul RFP envoyé dans tout le système
    """
    cleaned = clean_subject(subject)

    reference = extract_rfp_reference(cleaned)
    if reference:
        rfp = store.get_rfp(reference)
        if rfp is not None:
            return rfp, "reference"
        logger.debug(f"Référence RFP-{reference} inconnue, recherche par titre")

    sent_rfps = store.list_sent_rfps()

    needle = cleaned.lower()
    if needle:
        for rfp in sent_rfps:
            title = (rfp.title or "").strip().lower()
            if not title:
                continue
            if title in needle or needle in title:
                return rfp, "title"

    if len(sent_rfps) == 1:
        rfp = sent_rfps[0]
        logger.warning(
            f"⚠️ Rapprochement par défaut (unique RFP envoyé): sujet={subject!r} -> rfp={rfp.id}"
        )
        return rfp, "single_candidate"

    raise NoRFPMatch(
        f"Aucun RFP pour le sujet {subject!r} ({len(sent_rfps)} RFP envoyés)"
    )


def match_email(store: ProposalStore, sender: str, subject: str) -> EmailMatch:
    vendor = match_vendor(store, sender)
    rfp, strategy = match_rfp(store, subject)
    return EmailMatch(vendor=vendor, rfp=rfp, strategy=strategy)
