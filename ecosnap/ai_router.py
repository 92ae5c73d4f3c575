# ecosnap/ai_router.py — the only place that talks to the model API
from __future__ import annotations
import json, re, asyncio, logging
from typing import List, Dict, Any, Optional, Callable

from openai import OpenAI

from .config import Settings
from .throttle import CallLimiter

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class CompletionError(RuntimeError):
    """Model call failed (no key, network, rate limit, empty choice)."""


def _openai_create(api_key: Optional[str]) -> Callable[..., str]:
    """Blocking chat-completion call bound to one OpenAI client."""
    client: Optional[OpenAI] = None

    def create(messages: List[Dict[str, str]], **params: Any) -> str:
        nonlocal client
        if not api_key:
            raise CompletionError("OPENAI_API_KEY missing")
        if client is None:
            client = OpenAI(api_key=api_key)
        rsp = client.chat.completions.create(messages=messages, **params)
        return (rsp.choices[0].message.content or "").strip()

    return create


# ---------- JSON extraction ----------
def _loads(raw: str, want: type) -> Optional[Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, want) else None

def extract_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Whole reply as a JSON object, else the first {...} embedded in it, else None."""
    raw = (text or "").strip()
    if not raw:
        return None
    data = _loads(raw, dict)
    if data is not None:
        return data
    m = JSON_OBJECT_RE.search(raw)
    return _loads(m.group(0), dict) if m else None

def extract_json_list(text: Optional[str]) -> Optional[List[Any]]:
    raw = (text or "").strip()
    if not raw:
        return None
    data = _loads(raw, list)
    if data is not None:
        return data
    m = JSON_ARRAY_RE.search(raw)
    return _loads(m.group(0), list) if m else None


class CompletionClient:
    """
    Async facade over a blocking chat-completion call. Every call goes through
    the shared CallLimiter and runs in a worker thread so other requests keep
    moving while we wait on the API.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = Settings.model,
                 limiter: Optional[CallLimiter] = None,
                 create: Optional[Callable[..., str]] = None):
        self.model = model
        self.limiter = limiter or CallLimiter()
        self._create = create or _openai_create(api_key)
        self.configured = bool(api_key) or create is not None

    async def complete(self, messages: List[Dict[str, str]], temperature: float = 0.7,
                       max_tokens: int = 300, json_mode: bool = False) -> str:
        params: Dict[str, Any] = {"model": self.model, "temperature": temperature, "max_tokens": max_tokens}
        if json_mode:
            params["response_format"] = {"type": "json_object"}
        try:
            return await self.limiter.submit(asyncio.to_thread, self._create, messages, **params)
        except CompletionError:
            raise
        except Exception as e:
            raise CompletionError(f"{type(e).__name__}: {e}") from e

    async def complete_json(self, messages: List[Dict[str, str]], **kw: Any) -> Optional[Dict[str, Any]]:
        """Object reply or None when the model gave prose / nothing. Call errors still raise."""
        raw = await self.complete(messages, json_mode=True, **kw)
        data = extract_json(raw)
        if data is None:
            logger.warning("[ai] expected JSON object, got %r", raw[:120])
        return data


# ---------- 1) What is the user doing? ----------
DETECTION_SYSTEM = "You are a carbon impact detection AI. Return only JSON."

def _detection_prompt(message: str) -> str:
    return (
        "Analyze this message and extract sustainability-related information:\n"
        f"\"{message}\"\n\n"
        "Return a JSON object with:\n"
        "- activity: what the person is doing/using\n"
        "- category: one of [transport, food, shopping, energy, waste]\n"
        "- quantity: estimated amount (number, default 1)\n"
        "- unit: unit of measurement\n\n"
        "Format: JSON only, no other text"
    )

async def detect_activity_llm(client: CompletionClient, message: str) -> Optional[Dict[str, Any]]:
    data = await client.complete_json(
        [
            {"role": "system", "content": DETECTION_SYSTEM},
            {"role": "user", "content": _detection_prompt(message)},
        ],
        temperature=0.3,
        max_tokens=150,
    )
    if not data or not data.get("activity") or not data.get("category"):
        return None
    try:
        qty = float(data.get("quantity") or 1)
    except (TypeError, ValueError):
        qty = 1.0
    return {
        "activity": str(data["activity"]),
        "category": str(data["category"]),
        "quantity": qty,
        "unit": data.get("unit"),
    }


# ---------- 2) Full decision analysis ----------
ANALYSIS_PROMPT = """You are EcoSnap_AI, a sustainability impact analyzer.

Your job:
1. Identify the user's decision category: food, transport, shopping, energy or waste.
2. Extract quantities (distance, number of items, frequency).
3. Estimate carbon emissions using realistic global average emission factors.
4. Compare with a greener alternative.
5. Calculate the CO2 of the user's choice, the CO2 of the alternative and the CO2 saved (kg).

Use these average emission factors:
FOOD (kg CO2 per kg food): Beef 27, Lamb 24, Cheese 13.5, Chicken 6.5, Rice 2.5, Tofu 2, Beans 1.5, Vegetables 0.5
TRANSPORT (kg CO2 per km): Car 0.21, Electric car 0.05, Bus 0.08, Train 0.04, Flight 0.25, Bike 0, Walk 0
SHOPPING (per item): T-shirt 5, Jeans 15, Shoes 12, Smartphone 70, Laptop 200, Book 2

Rules:
- Respond with a JSON object only.
- All CO2 values are numbers rounded to 2 decimal places.
- sustainability_score: 10 (80%+ reduction), 7 (50-79%), 5 (30-49%), 3 (<30%)

Expected JSON keys:
{
  "category": "food" | "transport" | "shopping" | "energy" | "waste" | "other",
  "original_action": string,
  "original_co2_kg": number,
  "eco_alternative": string,
  "eco_co2_kg": number,
  "co2_saved_kg": number,
  "percentage_reduction": number,
  "sustainability_score": number,
  "encouragement_message": string
}
"""

async def analyze_decision_llm(client: CompletionClient, decision: str) -> Optional[Dict[str, Any]]:
    return await client.complete_json(
        [
            {"role": "system", "content": ANALYSIS_PROMPT},
            {"role": "user", "content": f"User decision: \"{decision}\""},
        ],
        temperature=0.2,
        max_tokens=400,
    )
