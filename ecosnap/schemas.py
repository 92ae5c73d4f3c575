# ecosnap/schemas.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional, Literal, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

Category = Literal["transport", "food", "shopping", "energy", "waste"]
Role = Literal["system", "user", "assistant"]

SCORE_BANDS = (3, 5, 7, 10)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CarbonImpact(BaseModel):
    model_config = ConfigDict(frozen=True)

    choice: str
    co2_kg: float
    alternative: str
    alt_co2_kg: float
    co2_saved: float  # co2_kg - alt_co2_kg; negative when the alternative is worse
    category: Category


class Message(BaseModel):
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class UserPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    location: Optional[str] = None
    lifestyle: Optional[str] = None      # urban | suburban | rural
    budget: Optional[str] = None         # tight | moderate | flexible
    diet: Optional[str] = None           # omnivore | vegetarian | vegan | pescatarian
    transportation: Optional[str] = None # car | public | bike | walk


class AIResponse(BaseModel):
    reply: str
    carbon_impact: Optional[CarbonImpact] = None
    suggestions: Optional[List[str]] = None
    confidence: float = Field(ge=0.0, le=1.0)


# ---------- HTTP bodies ----------
class ChatRequest(BaseModel):
    # optional here so a missing message gets the chat-style 400 body
    message: Optional[str] = None
    preferences: Optional[UserPreferences] = None


class DecisionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    decision: str = Field(min_length=1, max_length=500)


# ---------- Decision analysis ----------
class DecisionAnalysis(BaseModel):
    """Canonical analysis record. CO2 figures travel as strings (numeric columns)."""

    category: Literal["food", "transport", "shopping", "energy", "waste", "other"] = "other"
    original_action: str
    original_co2_kg: str
    eco_alternative: str
    eco_co2_kg: str
    co2_saved_kg: str
    percentage_reduction: str
    sustainability_score: int
    encouragement_message: str

    @field_validator("original_co2_kg", "eco_co2_kg", "co2_saved_kg", "percentage_reduction", mode="before")
    @classmethod
    def _numeric_text(cls, v: Any) -> str:
        if isinstance(v, bool):
            raise ValueError("expected a number")
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            float(v)  # must still parse as a number
            return v.strip()
        raise ValueError("expected a number")

    @field_validator("sustainability_score")
    @classmethod
    def _banded(cls, v: int) -> int:
        if v not in SCORE_BANDS:
            raise ValueError(f"sustainability_score must be one of {SCORE_BANDS}")
        return v


class Decision(DecisionAnalysis):
    id: int
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
