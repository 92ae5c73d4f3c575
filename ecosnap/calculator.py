# ecosnap/calculator.py — deterministic impact estimate for one activity
from __future__ import annotations
from typing import Dict, Optional, Tuple

from .factors import FACTORS, UNITS, EmissionFactor
from .schemas import CarbonImpact, DecisionAnalysis

PRECISION = 2


def _rule(category: str, keywords: Tuple[str, ...], factor: float, alternative: str, alt_factor: float) -> EmissionFactor:
    return EmissionFactor(
        category=category,
        keywords=frozenset(keywords),
        factor=factor,
        unit=UNITS[category],
        alternative_label=alternative,
        alternative_factor=alt_factor,
    )


_T, _F, _S, _E, _W = (FACTORS[c] for c in ("transport", "food", "shopping", "energy", "waste"))

# Ordered per category; the first rule whose keywords appear in the text wins.
# The last rule has no keywords and is the category default.
RULES: Dict[str, Tuple[EmissionFactor, ...]] = {
    "transport": (
        _rule("transport", ("car", "drive"), _T["car"], "electric car or public transport", _T["electric_car"]),
        _rule("transport", ("plane", "fly", "flight"), _T["plane"], "train travel", _T["train"]),
        _rule("transport", (), _T["car"], "bicycle or walking", _T["bike"]),
    ),
    "food": (
        _rule("food", ("beef", "burger"), _F["beef"], "plant-based burger or chicken", _F["chicken"]),
        _rule("food", ("cheese",), _F["cheese"], "plant-based cheese alternative", _F["tofu"]),
        _rule("food", (), _F["chicken"], "tofu or beans", _F["beans"]),
    ),
    "shopping": (
        _rule("shopping", ("shirt", "tshirt"), _S["tshirt"], "buy second-hand or sustainable brand", _S["tshirt"] * 0.3),
        _rule("shopping", ("phone",), _S["smartphone"], "repair current phone or buy refurbished", _S["smartphone"] * 0.4),
        _rule("shopping", (), _S["jeans"], "buy second-hand or sustainable denim", _S["jeans"] * 0.3),
    ),
    "energy": (
        _rule("energy", ("electricity", "power", "kwh"), _E["electricity"], "renewable electricity tariff", _E["electricity"] * 0.2),
        _rule("energy", ("gas", "heating"), _E["gas"], "heat pump", _E["electricity"]),
        _rule("energy", (), 1.0, "more sustainable alternative", 0.5),
    ),
    "waste": (
        _rule("waste", ("plastic", "bottle"), _W["plastic"], "reusable alternative", _W["glass"]),
        _rule("waste", (), 1.0, "more sustainable alternative", 0.5),
    ),
}


def match_rule(activity_text: str, category: str) -> Optional[EmissionFactor]:
    rules = RULES.get((category or "").strip().lower())
    if not rules:
        return None
    text = (activity_text or "").strip().lower()
    for r in rules:
        if not r.keywords or any(k in text for k in r.keywords):
            return r
    return rules[-1]


def estimate(activity_text: str, category: str, quantity: float = 1) -> Optional[CarbonImpact]:
    """
    Map free text + category to a CarbonImpact, or None for an unknown category.
    Never raises; quantity is used as given (callers sanitize it).
    """
    rule = match_rule(activity_text, category)
    if rule is None:
        return None
    try:
        q = float(quantity)
    except (TypeError, ValueError):
        q = 1.0

    co2_kg = round(rule.factor * q, PRECISION)
    alt_co2_kg = round(rule.alternative_factor * q, PRECISION)
    return CarbonImpact(
        choice=(activity_text or "").strip(),
        co2_kg=co2_kg,
        alternative=rule.alternative_label,
        alt_co2_kg=alt_co2_kg,
        co2_saved=round(co2_kg - alt_co2_kg, PRECISION),
        category=rule.category,
    )


# ---------- scoring shared by chat + decision analysis ----------
def percentage_reduction(co2_kg: float, alt_co2_kg: float) -> float:
    if co2_kg <= 0:
        return 0.0
    return round((co2_kg - alt_co2_kg) / co2_kg * 100, 1)


def sustainability_score(percentage: float) -> int:
    if percentage >= 80:
        return 10
    if percentage >= 50:
        return 7
    if percentage >= 30:
        return 5
    return 3


def analysis_from_impact(impact: CarbonImpact, encouragement: Optional[str] = None) -> DecisionAnalysis:
    pct = percentage_reduction(impact.co2_kg, impact.alt_co2_kg)
    return DecisionAnalysis(
        category=impact.category,
        original_action=impact.choice,
        original_co2_kg=impact.co2_kg,
        eco_alternative=impact.alternative,
        eco_co2_kg=impact.alt_co2_kg,
        co2_saved_kg=impact.co2_saved,
        percentage_reduction=pct,
        sustainability_score=sustainability_score(pct),
        encouragement_message=encouragement or "Every little bit helps!",
    )
