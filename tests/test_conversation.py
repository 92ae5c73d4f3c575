import asyncio

import pytest

from ecosnap.conversation import ConversationStore
from ecosnap.schemas import Message


def _fill(store, key, n):
    for i in range(n):
        role = "user" if i % 2 == 0 else "assistant"
        store.append(key, Message(role=role, content=f"m{i}"))


def test_trim_keeps_system_message_first():
    store = ConversationStore(limit=5, system_prompt="be green")
    _fill(store, "u", 12)
    history = store.get_history("u")
    assert len(history) == 5
    assert history[0].role == "system" and history[0].content == "be green"
    assert [m.content for m in history[1:]] == ["m8", "m9", "m10", "m11"]


def test_trim_without_system_keeps_newest():
    store = ConversationStore(limit=4)
    _fill(store, "u", 9)
    assert [m.content for m in store.get_history("u")] == ["m5", "m6", "m7", "m8"]


def test_length_never_exceeds_limit_after_any_append():
    store = ConversationStore(limit=3, system_prompt="sys")
    for i in range(10):
        store.append("u", Message(role="user", content=str(i)))
        assert len(store.get_history("u")) <= 3


def test_clear_with_system_prompt_resets_to_it():
    store = ConversationStore(limit=10, system_prompt="sys")
    _fill(store, "u", 4)
    store.clear("u")
    assert [m.role for m in store.get_history("u")] == ["system"]
    store.clear("never-seen")
    assert [m.role for m in store.get_history("never-seen")] == ["system"]


def test_clear_without_system_prompt_drops_key():
    store = ConversationStore(limit=10)
    _fill(store, "u", 4)
    store.clear("u")
    assert store.get_history("u") == []
    assert len(store) == 0


def test_users_are_isolated_and_lazy():
    store = ConversationStore(limit=10)
    assert len(store) == 0
    store.append("a", Message(role="user", content="hi"))
    assert store.get_history("b") == []
    assert len(store) == 1


def test_get_history_is_a_copy():
    store = ConversationStore(limit=10)
    store.append("a", Message(role="user", content="hi"))
    store.get_history("a").append(Message(role="user", content="sneaky"))
    assert len(store.get_history("a")) == 1


def test_conversation_view_skips_system():
    store = ConversationStore(limit=10, system_prompt="sys")
    _fill(store, "u", 5)
    assert [m.content for m in store.conversation_view("u")] == ["m0", "m1", "m2", "m3", "m4"]


def test_limit_must_leave_room_for_a_turn():
    with pytest.raises(ValueError):
        ConversationStore(limit=1)


def test_lock_is_per_key():
    store = ConversationStore()
    assert store.lock("a") is store.lock("a")
    assert store.lock("a") is not store.lock("b")


def test_clear_drops_idle_lock():
    store = ConversationStore()
    store.append("a", Message(role="user", content="hi"))
    first = store.lock("a")
    store.clear("a")
    assert store.lock("a") is not first


def test_clear_inside_a_turn_drops_the_lock_afterwards():
    store = ConversationStore()

    async def run():
        async with store.turn("a"):
            store.append("a", Message(role="user", content="hi"))
            held = store.lock("a")
            store.clear("a")
            # still ours until the turn ends
            assert store.lock("a") is held
        return held

    held = asyncio.run(run())
    assert store.lock("a") is not held


def test_turn_keeps_lock_while_others_wait():
    store = ConversationStore()
    order = []

    async def one(name, delay):
        async with store.turn("a"):
            order.append(name + ":start")
            await asyncio.sleep(delay)
            store.clear("a")
            order.append(name + ":end")

    async def run():
        await asyncio.gather(one("x", 0.05), one("y", 0))

    asyncio.run(run())
    assert order == ["x:start", "x:end", "y:start", "y:end"]
