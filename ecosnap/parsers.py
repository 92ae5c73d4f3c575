# ecosnap/parsers.py — local activity reader (quantity + category) used when the model can't tell us
from __future__ import annotations
import re
from typing import Dict, List, Optional, Tuple

# ------------------ Units ------------------
UNIT_ALIASES = {
    'kms': 'km', 'kilometer': 'km', 'kilometers': 'km', 'kilometre': 'km', 'kilometres': 'km',
    'mi': 'mile', 'miles': 'mile',
    'lbs': 'lb', 'pound': 'lb', 'pounds': 'lb',
    'kilogram': 'kg', 'kilograms': 'kg', 'kgs': 'kg',
    'grams': 'g', 'gram': 'g',
    'kwh': 'kwh', 'kilowatt-hours': 'kwh',
    'items': 'each', 'item': 'each', 'pcs': 'each', 'x': 'each',
}
VALID_UNITS = {'km', 'mile', 'lb', 'kg', 'g', 'kwh', 'each'}

# convert into the table's base units (km for distance, kg for mass)
TO_BASE = {
    'km': (1.0, 'km'),
    'mile': (1.609344, 'km'),
    'kg': (1.0, 'kg'),
    'lb': (0.45359237, 'kg'),
    'g': (0.001, 'kg'),
    'kwh': (1.0, 'kwh'),
    'each': (1.0, 'each'),
}

def _norm_unit(u: Optional[str]) -> Optional[str]:
    if not u:
        return None
    u = u.strip().lower()
    u = UNIT_ALIASES.get(u, u)
    return u if u in VALID_UNITS else None

QTY_RE = re.compile(r"(?P<qty>\d+(?:\.\d+)?)\s*(?P<unit>[a-zA-Z][a-zA-Z\-]*)?")

def extract_quantity(text: str) -> Tuple[float, Optional[str]]:
    """
    First number in the text with its unit, converted to base units.
    "drove 10 miles" -> (16.09, 'km'); "3 t-shirts" -> (3.0, None); no number -> (1.0, None)
    """
    for m in QTY_RE.finditer(text or ""):
        qty = float(m.group('qty'))
        if qty <= 0:
            continue
        unit = _norm_unit(m.group('unit'))
        if not unit:
            return qty, None
        mult, base = TO_BASE[unit]
        return round(qty * mult, 2), base
    return 1.0, None

# ------------------ Category hints ------------------
# ordered: earlier categories win when a text mentions several; whole words only
CATEGORY_HINTS: List[Tuple[str, Tuple[str, ...]]] = [
    ("transport", ("uber", "taxi", "cabs?", "cars?", "suv", "drive", "drove", "driving", "bus", "buses", "trains?",
                   "metro", "subway", "planes?", "fly", "flew", "flying", "flights?", "commut\\w*", "bikes?",
                   "cycling", "walk\\w*", "km", "miles?")),
    ("food", ("beef", "burgers?", "steak", "lamb", "cheese", "chicken", "pork", "fish", "meals?", "lunch",
              "dinner", "breakfast", "eat", "eating", "ate", "food", "tofu", "rice", "vegetables?", "eggs?")),
    ("shopping", ("buy\\w*", "bought", "shop\\w*", "t-?shirts?", "shirts?", "jeans", "shoes", "phones?",
                  "smartphones?", "laptops?", "books?", "clothes")),
    ("energy", ("electricity", "power", "kwh", "heating", "gas", "showers?", "air conditioning", "energy")),
    ("waste", ("plastic", "bottles?", "paper", "glass", "aluminum", "trash", "recycl\\w*", "waste")),
]
_HINT_RES = [(cat, re.compile(r"\b(?:" + "|".join(h) + r")\b")) for cat, h in CATEGORY_HINTS]

def guess_category(text: str) -> Optional[str]:
    t = (text or "").strip().lower()
    for category, rx in _HINT_RES:
        if rx.search(t):
            return category
    return None

def detect_activity(text: str) -> Optional[Dict]:
    """Local stand-in for model detection: {'activity','category','quantity','unit'} or None."""
    body = (text or "").strip()
    if not body:
        return None
    category = guess_category(body)
    if not category:
        return None
    qty, unit = extract_quantity(body)
    return {"activity": body, "category": category, "quantity": qty, "unit": unit}
