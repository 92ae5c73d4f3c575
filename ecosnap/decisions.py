# ecosnap/decisions.py — one-shot decision analysis, persisted
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .ai_router import CompletionClient, CompletionError, analyze_decision_llm
from .calculator import analysis_from_impact, estimate, percentage_reduction, sustainability_score
from .mapper import canonical_category
from .parsers import extract_quantity, guess_category
from .schemas import Decision, DecisionAnalysis
from .storage import DecisionStore

logger = logging.getLogger(__name__)

ENCOURAGEMENT = {
    10: "Outstanding! That swap almost wipes out the footprint of this choice.",
    7: "Great choice! That alternative cuts more than half of the emissions.",
    5: "Nice! Every swap like this adds up over a year.",
    3: "Every little bit helps!",
}


def _num(v: Any) -> float:
    return round(float(v), 2)


def normalize_analysis(raw: Dict[str, Any], decision: str) -> Optional[DecisionAnalysis]:
    """
    Model JSON -> canonical record. Savings, percentage and score are recomputed
    from the two CO2 figures; None when the figures are missing or not numbers.
    """
    try:
        co2 = _num(raw["original_co2_kg"])
        alt = _num(raw["eco_co2_kg"])
    except (KeyError, TypeError, ValueError):
        return None
    pct = percentage_reduction(co2, alt)
    score = sustainability_score(pct)
    try:
        return DecisionAnalysis(
            category=canonical_category(raw.get("category")) or "other",
            original_action=str(raw.get("original_action") or decision),
            original_co2_kg=co2,
            eco_alternative=str(raw.get("eco_alternative") or "None"),
            eco_co2_kg=alt,
            co2_saved_kg=round(co2 - alt, 2),
            percentage_reduction=pct,
            sustainability_score=score,
            encouragement_message=str(raw.get("encouragement_message") or ENCOURAGEMENT[score]),
        )
    except ValidationError as e:
        logger.warning("[decisions] model analysis rejected: %s", e)
        return None


def local_analysis(decision: str) -> DecisionAnalysis:
    """Keyword rules + emission table; used when the model can't be reached."""
    category = guess_category(decision)
    impact = None
    if category:
        qty, _unit = extract_quantity(decision)
        impact = estimate(decision, category, qty)
    if impact is None:
        return DecisionAnalysis(
            category="other",
            original_action=decision,
            original_co2_kg=0.0,
            eco_alternative="None",
            eco_co2_kg=0.0,
            co2_saved_kg=0.0,
            percentage_reduction=0.0,
            sustainability_score=3,
            encouragement_message=ENCOURAGEMENT[3],
        )
    pct = percentage_reduction(impact.co2_kg, impact.alt_co2_kg)
    return analysis_from_impact(impact, ENCOURAGEMENT[sustainability_score(pct)])


class DecisionAnalyzer:
    def __init__(self, client: CompletionClient, store: DecisionStore):
        self.client = client
        self.store = store

    async def analyze(self, decision: str, user_id: Optional[str] = None) -> Decision:
        analysis = None
        if self.client.configured:
            try:
                raw = await analyze_decision_llm(self.client, decision)
            except CompletionError as e:
                logger.warning("[decisions] model unavailable, estimating locally: %s", e)
                raw = None
            if raw:
                analysis = normalize_analysis(raw, decision)
        if analysis is None:
            analysis = local_analysis(decision)
        return self.store.create(analysis, user_id)
