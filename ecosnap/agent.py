# ecosnap/agent.py — per-message orchestration: cache → detect → estimate → compose → remember
from __future__ import annotations
import logging
from typing import Dict, List, Optional, Any

from .ai_router import CompletionClient, CompletionError, detect_activity_llm
from .cache import TTLCache
from .calculator import estimate
from .config import Settings, load_settings
from .conversation import ConversationStore
from .mapper import canonical_category
from .parsers import detect_activity
from .schemas import AIResponse, CarbonImpact, Message, UserPreferences
from .suggestions import ResponseComposer, GENERIC_SUGGESTIONS
from .throttle import CallLimiter

logger = logging.getLogger(__name__)

CACHE_PREFIX_LEN = 50


def fallback_response() -> AIResponse:
    return AIResponse(
        reply=(
            "I'm here to help with eco-friendly suggestions! Could you tell me more about what you're "
            "looking for? For example, you could ask about transportation, food choices, or shopping habits."
        ),
        suggestions=[
            "Try asking: 'What's the carbon impact of driving vs public transport?'",
            "Or: 'Suggest eco-friendly alternatives for lunch'",
            "You can also: 'Compare beef burger vs plant-based burger'",
        ],
        confidence=0.7,
    )


class EcoAgent:
    """
    Owns per-user history, preferences and the reply cache. Everything is
    injected; missing pieces are built from Settings. State for a user key is
    created on first message and only removed by clear_history.
    """

    def __init__(self, client: Optional[CompletionClient] = None,
                 conversations: Optional[ConversationStore] = None,
                 composer: Optional[ResponseComposer] = None,
                 cache: Optional[TTLCache] = None,
                 settings: Optional[Settings] = None):
        s = settings or load_settings()
        if client is None:
            limiter = CallLimiter(s.max_concurrency, s.calls_per_window, s.window_seconds)
            client = CompletionClient(api_key=s.openai_api_key, model=s.model, limiter=limiter)
        self.client = client
        self.conversations = conversations if conversations is not None else ConversationStore(limit=s.history_limit)
        self.composer = composer or ResponseComposer(client, context_turns=s.context_turns)
        self.cache = cache if cache is not None else TTLCache(ttl=s.cache_ttl)
        self._preferences: Dict[str, UserPreferences] = {}

    # ---------- preferences ----------
    def set_preferences(self, user_key: str, prefs: UserPreferences) -> None:
        self._preferences[user_key] = prefs

    def get_preferences(self, user_key: str) -> Optional[UserPreferences]:
        return self._preferences.get(user_key)

    # ---------- impact ----------
    async def detect_and_calculate(self, message: str) -> Optional[CarbonImpact]:
        detected = None
        if self.client.configured:
            try:
                detected = await detect_activity_llm(self.client, message)
            except CompletionError as e:
                logger.info("[ai] detection unavailable, using keyword rules: %s", e)
        if detected is None:
            detected = detect_activity(message)
        if detected is None:
            return None

        category = canonical_category(detected["category"]) or detected["category"]
        qty = detected.get("quantity") or 1
        if qty <= 0:
            qty = 1
        return estimate(detected["activity"], category, qty)

    # ---------- main entry ----------
    async def process_message(self, message: str, user_key: str = "anonymous",
                              preferences: Optional[UserPreferences] = None) -> AIResponse:
        try:
            if preferences is not None:
                self.set_preferences(user_key, preferences)

            cache_key = f"{user_key}:{message[:CACHE_PREFIX_LEN]}"
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

            # one turn at a time per user so history order == completion order
            async with self.conversations.turn(user_key):
                self.conversations.append(user_key, Message(role="user", content=message))
                impact = await self.detect_and_calculate(message)
                composed = await self.composer.compose(
                    message, impact, self.get_preferences(user_key), self.conversations.get_history(user_key)
                )
                self.conversations.append(user_key, Message(role="assistant", content=composed.reply))

            result = AIResponse(
                reply=composed.reply,
                carbon_impact=impact,
                suggestions=composed.suggestions or list(GENERIC_SUGGESTIONS),
                confidence=composed.confidence,
            )
            # degraded replies are not cached so the next try can reach the model
            if not composed.fallback:
                self.cache.set(cache_key, result)
            return result
        except Exception:
            logger.exception("[agent] failed to process message for %s", user_key)
            return fallback_response()

    # ---------- history ----------
    async def clear_history(self, user_key: str) -> None:
        async with self.conversations.turn(user_key):
            self.conversations.clear(user_key)

    def get_history(self, user_key: str) -> List[Message]:
        return self.conversations.conversation_view(user_key)

    def stats(self) -> Dict[str, Any]:
        self.cache.purge()
        return {
            "active_users": len(self.conversations),
            "cache_size": len(self.cache),
            "pending_requests": self.client.limiter.pending,
        }
