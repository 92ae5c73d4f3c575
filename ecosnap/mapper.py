# ecosnap/mapper.py — map free-form category labels (model output, form input) onto table categories
from typing import Optional

from fuzzywuzzy import process

from .factors import CATEGORIES

ALIASES = {
    "travel": "transport",
    "transportation": "transport",
    "commute": "transport",
    "mobility": "transport",
    "diet": "food",
    "meal": "food",
    "drink": "food",
    "fashion": "shopping",
    "clothing": "shopping",
    "purchase": "shopping",
    "electricity": "energy",
    "utilities": "energy",
    "home": "energy",
    "recycling": "waste",
    "trash": "waste",
}

def canonical_category(label: Optional[str]) -> Optional[str]:
    n = (label or "").strip().lower()
    if not n:
        return None
    if n in CATEGORIES:
        return n
    if n in ALIASES:
        return ALIASES[n]
    # typo-tolerant last resort ("transprot", "shoping")
    hit = process.extractOne(n, list(CATEGORIES))
    if not hit:
        return None
    best, score = hit
    return best if score >= 80 else None
