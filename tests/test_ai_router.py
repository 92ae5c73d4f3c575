import asyncio
import json
import threading
import time

import pytest

from ecosnap.ai_router import (
    CompletionClient, CompletionError, detect_activity_llm, extract_json, extract_json_list,
)
from ecosnap.throttle import CallLimiter, RateLimiter

from conftest import RoutedModel, make_client


@pytest.mark.parametrize("text,expected", [
    ('{"a": 1}', {"a": 1}),
    ('Sure! Here you go: {"a": {"b": 2}} hope it helps', {"a": {"b": 2}}),
    ("no json here", None),
    ("{broken", None),
    ("", None),
    (None, None),
    ("[1, 2]", None),
])
def test_extract_json(text, expected):
    assert extract_json(text) == expected


def test_extract_json_list():
    assert extract_json_list('["a", "b"]') == ["a", "b"]
    assert extract_json_list('Here: ["a"] done') == ["a"]
    assert extract_json_list('{"a": 1}') is None
    assert extract_json_list("") is None


def test_complete_passes_model_params():
    seen = {}

    def create(messages, **params):
        seen.update(params)
        return "  hello  "

    client = CompletionClient(model="m1", create=create)
    out = asyncio.run(client.complete([{"role": "user", "content": "hi"}], temperature=0.1, max_tokens=9, json_mode=True))
    assert out == "  hello  "
    assert seen == {"model": "m1", "temperature": 0.1, "max_tokens": 9, "response_format": {"type": "json_object"}}


def test_errors_become_completion_error():
    def create(messages, **params):
        raise ConnectionError("boom")

    client = CompletionClient(create=create)
    with pytest.raises(CompletionError):
        asyncio.run(client.complete([]))


def test_missing_api_key_is_a_completion_error():
    client = CompletionClient(api_key=None)
    assert not client.configured
    with pytest.raises(CompletionError):
        asyncio.run(client.complete([{"role": "user", "content": "hi"}]))


def test_detect_activity_llm():
    model = RoutedModel(detect=json.dumps({"activity": "beef burger", "category": "food", "quantity": "2"}))
    got = asyncio.run(detect_activity_llm(make_client(model), "two beef burgers"))
    assert got == {"activity": "beef burger", "category": "food", "quantity": 2.0, "unit": None}


@pytest.mark.parametrize("reply", ["not json", json.dumps({"activity": "x"}), ""])
def test_detect_activity_llm_rejects_incomplete(reply):
    model = RoutedModel(detect=reply)
    assert asyncio.run(detect_activity_llm(make_client(model), "hmm")) is None


def test_call_limiter_caps_concurrency():
    limiter = CallLimiter(concurrency=2, per_window=100, window=1.0)
    lock = threading.Lock()
    state = {"now": 0, "peak": 0}

    def work():
        with lock:
            state["now"] += 1
            state["peak"] = max(state["peak"], state["now"])
        time.sleep(0.05)
        with lock:
            state["now"] -= 1
        return True

    async def run():
        return await asyncio.gather(*(limiter.submit(asyncio.to_thread, work) for _ in range(6)))

    assert asyncio.run(run()) == [True] * 6
    assert state["peak"] <= 2
    assert limiter.pending == 0


def test_call_limiter_queues_past_window_budget():
    limiter = CallLimiter(concurrency=10, per_window=2, window=0.2)

    async def noop():
        return time.monotonic()

    async def run():
        return await asyncio.gather(*(limiter.submit(noop) for _ in range(4)))

    starts = sorted(asyncio.run(run()))
    # the 3rd call had to wait for the first window to roll over
    assert starts[2] - starts[0] >= 0.15


def test_rate_limiter_fixed_window():
    now = [1000.0]
    rl = RateLimiter(limit=2, window=60, clock=lambda: now[0])
    a, b, c = rl.check("k"), rl.check("k"), rl.check("k")
    assert (a.allowed, a.remaining) == (True, 1)
    assert (b.allowed, b.remaining) == (True, 0)
    assert (c.allowed, c.remaining, c.reset) == (False, 0, 1060)
    assert rl.check("other").allowed
    now[0] = 1061.0
    assert rl.check("k").allowed


def test_rate_limiter_forgets_finished_windows():
    now = [1000.0]
    rl = RateLimiter(limit=5, window=60, clock=lambda: now[0])
    for i in range(4):
        rl.check(f"caller-{i}")
    assert len(rl) == 4
    now[0] = 1061.0
    rl.check("late")
    assert len(rl) == 1
