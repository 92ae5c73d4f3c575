import asyncio
import json
import random

import pytest

from ecosnap.ai_router import CompletionError
from ecosnap.calculator import estimate
from ecosnap.schemas import Message, UserPreferences
from ecosnap.suggestions import (
    CATEGORY_TIPS, FALLBACK_TIPS, GENERIC_SUGGESTIONS, ResponseComposer, build_messages, parse_reply,
    system_prompt,
)

from conftest import RoutedModel, make_client


def compose(model, message="ordering a beef burger", impact=None, prefs=None, history=()):
    composer = ResponseComposer(make_client(model), context_turns=3, rng=random.Random(7))
    return asyncio.run(composer.compose(message, impact, prefs, history))


def test_prose_reply_with_impact():
    model = RoutedModel(reply="Beef is heavy! Try chicken.")
    out = compose(model, impact=estimate("beef burger", "food"))
    assert out.reply == "Beef is heavy! Try chicken."
    assert out.confidence == 0.95
    assert out.suggestions == ["Walk more", "Eat local", "Buy less"]
    assert not out.fallback


def test_confidence_without_impact():
    out = compose(RoutedModel(reply="Hello!"), message="hi there")
    assert out.confidence == 0.85


def test_json_reply_is_rendered_and_rebanded():
    payload = {
        "category": "food", "original_action": "Beef burger", "original_co2_kg": 5.4,
        "eco_alternative": "Bean burger", "eco_co2_kg": 0.5, "co2_saved_kg": 4.9,
        "percentage_reduction": 90.7, "sustainability_score": 3,  # wrong band on purpose
        "encouragement_message": "You've got this!", "suggestions": ["Try lentils", "", 7],
    }
    model = RoutedModel(reply="Here is my analysis:\n" + json.dumps(payload))
    out = compose(model)
    assert "Beef burger comes to about 5.4 kg CO2." in out.reply
    assert "score 10/10" in out.reply
    assert out.reply.endswith("You've got this!")
    assert out.suggestions == ["Try lentils"]
    assert model.count("suggest") == 0


@pytest.mark.parametrize("raw", ["", "   ", '{"reply": ', '{"unrelated": true}'])
def test_unusable_reply_falls_back_to_a_tip(raw):
    out = compose(RoutedModel(reply=raw), impact=estimate("drive", "transport"))
    assert out.fallback
    assert out.reply in FALLBACK_TIPS
    assert 0.0 <= out.confidence <= 1.0
    assert out.suggestions == CATEGORY_TIPS["transport"]


def test_completion_error_falls_back():
    out = compose(RoutedModel(reply=CompletionError("429 Too Many Requests")))
    assert out.fallback
    assert out.reply in FALLBACK_TIPS
    assert out.suggestions == GENERIC_SUGGESTIONS


def test_suggestion_failure_uses_defaults():
    model = RoutedModel(reply="Nice!", suggest="I can't do JSON today")
    out = compose(model, impact=estimate("plastic bottle", "waste"))
    assert out.reply == "Nice!"
    assert out.suggestions == CATEGORY_TIPS["waste"]


def test_context_window_is_bounded_and_has_impact_block():
    history = [Message(role="system", content="sys")]
    history += [Message(role="user" if i % 2 == 0 else "assistant", content=f"t{i}") for i in range(8)]
    history.append(Message(role="user", content="ordering a beef burger"))
    msgs = build_messages("ordering a beef burger", estimate("beef burger", "food"), None, history, context_turns=3)
    assert msgs[0]["role"] == "system"
    assert [m["content"] for m in msgs[1:-1]] == ["t5", "t6", "t7"]
    assert "Carbon Impact Analysis" in msgs[-1]["content"]
    assert "Current CO2: 27.0 kg" in msgs[-1]["content"]


def test_preferences_reach_the_system_prompt():
    prompt = system_prompt(UserPreferences(location="Lisbon", budget="tight"))
    assert "Location: Lisbon" in prompt
    assert "Budget: tight" in prompt
    assert "Diet: Not specified" in prompt


def test_parse_reply_plain_text():
    assert parse_reply("Just walk!") == ("Just walk!", None)
    assert parse_reply(None) == (None, None)


@pytest.mark.parametrize("raw", [
    "Pack a {reusable} cup for your coffee run!",
    "Swap a burger for beans and you'll save ~20 kg CO2 {per month}.",
])
def test_prose_with_braces_is_still_a_reply(raw):
    assert parse_reply(raw) == (raw, None)
    out = compose(RoutedModel(reply=raw))
    assert out.reply == raw
    assert not out.fallback


@pytest.mark.parametrize("raw", ['{"original_co2_kg": 5.4,', "```json\n{\"reply\": \n```"])
def test_broken_json_reply_is_unusable(raw):
    assert parse_reply(raw) == (None, None)


def test_fenced_json_reply_is_read():
    raw = "```json\n" + json.dumps({"reply": "Take the train!", "suggestions": ["Book early"]}) + "\n```"
    assert parse_reply(raw) == ("Take the train!", ["Book early"])
