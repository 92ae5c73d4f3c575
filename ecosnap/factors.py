# ecosnap/factors.py — static emission factors (kg CO2 per unit)
# Global averages; good enough for a comparison, not for accounting.
from __future__ import annotations
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, FrozenSet

UNITS = {
    "transport": "per km",
    "food": "per kg",
    "shopping": "per item",
    "energy": "per unit",
    "waste": "per unit",
}

_FACTORS: Dict[str, Dict[str, float]] = {
    "transport": {
        "car": 0.21,
        "suv": 0.28,
        "electric_car": 0.05,
        "bus": 0.08,
        "train": 0.04,
        "plane": 0.25,
        "bike": 0.0,
        "walk": 0.0,
    },
    "food": {
        "beef": 27.0,
        "lamb": 24.0,
        "cheese": 13.5,
        "pork": 7.5,
        "chicken": 6.5,
        "fish": 5.0,
        "eggs": 4.5,
        "rice": 2.5,
        "tofu": 2.0,
        "beans": 1.5,
        "vegetables": 0.5,
        "fruits": 0.5,
    },
    "shopping": {
        "tshirt": 5.0,
        "jeans": 15.0,
        "shoes": 12.0,
        "smartphone": 70.0,
        "laptop": 200.0,
        "book": 2.0,
    },
    "energy": {
        "electricity": 0.5,
        "gas": 2.5,
        "water": 0.3,
    },
    "waste": {
        "plastic": 3.5,
        "paper": 1.2,
        "glass": 0.8,
        "aluminum": 6.0,
    },
}

# read-only views; nothing mutates the table at runtime
FACTORS: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {cat: MappingProxyType(dict(tbl)) for cat, tbl in _FACTORS.items()}
)

CATEGORIES = tuple(FACTORS.keys())


@dataclass(frozen=True)
class EmissionFactor:
    category: str
    keywords: FrozenSet[str]
    factor: float
    unit: str
    alternative_label: str
    alternative_factor: float


def factor_table(category: str) -> Optional[Mapping[str, float]]:
    """Sub-table for a category, or None when nothing can be computed."""
    return FACTORS.get((category or "").strip().lower())


def equivalent(kg_co2: float) -> str:
    """Human-sized comparison for a CO2 figure."""
    if kg_co2 < 1:
        return f"{round(kg_co2 * 1000)} grams of CO2"
    if kg_co2 >= 100:
        return f"{round(kg_co2 / 100)} months of average household electricity"
    if kg_co2 >= 10:
        return f"{round(kg_co2 / 10)} tree-months of carbon absorption"
    return f"{round(kg_co2)} kg of CO2"
