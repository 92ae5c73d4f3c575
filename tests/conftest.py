import json

import pytest

from ecosnap.ai_router import CompletionClient, DETECTION_SYSTEM
from ecosnap.throttle import CallLimiter


class RoutedModel:
    """
    Stands in for the blocking OpenAI call. Routes on the system prompt:
    detection, suggestions (JSON array), decision analysis, else the chat reply.
    Each route is a str, an Exception (raised) or a callable(messages) -> str.
    """

    def __init__(self, reply="Sounds good! Try the bus next time.", detect=None, suggest=None, analyze=None):
        self.reply = reply
        self.detect = detect if detect is not None else json.dumps({})
        self.suggest = suggest if suggest is not None else json.dumps(["Walk more", "Eat local", "Buy less"])
        self.analyze = analyze if analyze is not None else "{}"
        self.calls = []

    def _route(self, messages):
        system = messages[0]["content"] if messages and messages[0]["role"] == "system" else ""
        if system == DETECTION_SYSTEM:
            return "detect", self.detect
        if "JSON array" in system:
            return "suggest", self.suggest
        if system.startswith("You are EcoSnap_AI"):
            return "analyze", self.analyze
        return "reply", self.reply

    def __call__(self, messages, **params):
        name, r = self._route(messages)
        self.calls.append((name, messages, params))
        if callable(r):
            r = r(messages)
        if isinstance(r, Exception):
            raise r
        return r

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)


def make_client(model, **limiter_kw):
    return CompletionClient(api_key=None, model="test-model", limiter=CallLimiter(**limiter_kw), create=model)


@pytest.fixture
def model():
    return RoutedModel()


@pytest.fixture
def client(model):
    return make_client(model)
