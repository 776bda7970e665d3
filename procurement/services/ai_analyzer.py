# procurement/services/ai_analyzer.py
"""
Port d'extraction IA - Utilise une API compatible OpenAI pour
extraire les conditions d'une proposition fournisseur et la noter
par rapport au RFP.
"""

import json
import logging
import re

from openai import (
    OpenAI, APIConnectionError, APITimeoutError, InternalServerError, RateLimitError
)
from pydantic import ValidationError
from tenacity import (
    RetryError, retry, stop_after_attempt, wait_exponential, retry_if_exception_type
)

from procurement.config import get_settings
from procurement.exceptions import AnalysisFailed
from procurement.models.rfp import RFP
from procurement.schemas.analysis import ProposalAnalysis, RFPItemSummary, RFPSummary

logger = logging.getLogger(__name__)
settings = get_settings()

# Erreurs de transport : seules celles-ci justifient un nouvel essai
TRANSIENT_ERRORS = (RateLimitError, APITimeoutError, APIConnectionError, InternalServerError)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = (
    "You are an expert procurement analyst. You extract commercial terms from "
    "vendor proposals and return strictly valid JSON, with no surrounding text."
)

PROPOSAL_PROMPT = """Analyze this vendor proposal for the given RFP (Request for Proposal).

RFP Details:
{rfp_details}

Vendor Proposal:
---
{proposal}
---

Return ONLY a JSON object with these fields:

{{
  "proposedPrice": <number or null if not specified>,
  "deliveryDays": <number of days or null if not specified>,
  "warranty": <warranty terms as string or null>,
  "paymentTerms": <payment terms as string or null>,
  "itemPricing": [{{"name": "item1", "price": 100}}] or [] if not specified,
  "strengths": ["strength1", ...],
  "weaknesses": ["weakness1", ...],
  "score": <0-100 based on price competitiveness (40%), delivery timeline (25%), payment terms (20%), quality/warranty (15%)>,
  "recommendation": "<2-3 sentence recommendation summary>"
}}"""


def summarize_rfp(rfp: RFP) -> RFPSummary:
    """Normalise un RFP (et ses articles) pour le prompt"""
    return RFPSummary(
        title=rfp.title,
        description=rfp.description,
        budget=float(rfp.budget) if rfp.budget is not None else None,
        delivery_deadline=rfp.delivery_deadline.isoformat() if rfp.delivery_deadline else None,
        payment_terms=rfp.payment_terms,
        warranty=rfp.warranty,
        items=[
            RFPItemSummary(
                name=item.name,
                quantity=item.quantity,
                specifications=item.specifications or {},
            )
            for item in rfp.items
        ],
    )


def format_rfp_summary(summary: RFPSummary) -> str:
    lines = [
        f"Title: {summary.title}",
        f"Description: {summary.description or 'N/A'}",
        f"Budget: {summary.budget if summary.budget is not None else 'Not specified'}",
        f"Delivery Deadline: {summary.delivery_deadline or 'Not specified'}",
        f"Payment Terms: {summary.payment_terms or 'Not specified'}",
        f"Warranty Required: {summary.warranty or 'Not specified'}",
        "Items:",
    ]
    for i, item in enumerate(summary.items, 1):
        specs = ", ".join(f"{k}: {v}" for k, v in item.specifications.items())
        line = f"  {i}. {item.name} - Quantity: {item.quantity}"
        if specs:
            line += f" ({specs})"
        lines.append(line)
    return "\n".join(lines)


def parse_analysis(content: str | None) -> ProposalAnalysis:
    """
    Extrait et valide l'objet JSON renvoyé par le modèle.
    Toute sortie non exploitable est un échec franc de la tentative.
    """
    if not content:
        raise AnalysisFailed("Réponse IA vide")

    match = _JSON_OBJECT.search(content)
    if not match:
        raise AnalysisFailed("Aucun objet JSON dans la réponse IA")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AnalysisFailed(f"JSON IA invalide: {e}") from e

    if not isinstance(data, dict):
        raise AnalysisFailed("La réponse IA n'est pas un objet JSON")

    try:
        return ProposalAnalysis.model_validate(data)
    except ValidationError as e:
        raise AnalysisFailed(f"Structure IA inattendue: {e.error_count()} erreur(s)") from e


class ProposalAnalyzer:
    """Analyse IA des propositions fournisseurs"""

    def __init__(self, client: OpenAI | None = None):
        self.client = client or OpenAI(
            api_key=settings.AI_API_KEY,
            base_url=settings.AI_BASE_URL,
        )
        self.model = settings.AI_MODEL

    @retry(
        stop=stop_after_attempt(settings.MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=lambda retry_state: logger.warning(
            f"Retry {retry_state.attempt_number}/{settings.MAX_RETRY_ATTEMPTS} - Appel IA echoue, attente..."
        ),
    )
    def _call_model(self, system_prompt: str, user_prompt: str) -> str | None:
        """Appel a l'API avec retry automatique sur les erreurs de transport."""
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=settings.AI_MAX_TOKENS,
            temperature=settings.AI_TEMPERATURE,
        )
        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(f"Reponse IA recue ({usage.total_tokens} tokens)")
        return response.choices[0].message.content

    def analyze(self, summary: RFPSummary, raw_content: str) -> ProposalAnalysis:
        """
        Extrait les champs structurés d'une proposition.

        Raises:
            AnalysisFailed: API indisponible après retries, ou réponse non conforme
        """
        user_prompt = PROPOSAL_PROMPT.format(
            rfp_details=format_rfp_summary(summary),
            proposal=raw_content[:12000],
        )

        try:
            content = self._call_model(SYSTEM_PROMPT, user_prompt)
        except RetryError as e:
            raise AnalysisFailed(f"API IA indisponible: {e.last_attempt.exception()}") from e
        except Exception as e:
            raise AnalysisFailed(f"Erreur appel IA: {e}") from e

        return parse_analysis(content)
