from __future__ import annotations

import pytest

from llm_consensus.history import ConversationHistory, ConversationStore, ConversationTurn

hypothesis = pytest.importorskip("hypothesis")
st = pytest.importorskip("hypothesis.strategies")


def test_history_drops_oldest_turns_beyond_limit() -> None:
    history = ConversationHistory(limit=2)
    history.append("user", "one")
    history.append("assistant", "two")
    history.append("user", "three")

    assert len(history) == 2
    assert history.as_messages() == [
        {"role": "assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]


def test_default_limit_is_twenty() -> None:
    history = ConversationHistory()
    for index in range(25):
        history.append("user", str(index))
    assert history.limit == 20
    assert [turn.content for turn in history][0] == "5"


def test_turn_rejects_unknown_role() -> None:
    with pytest.raises(ValueError):
        ConversationTurn(role="tool", content="x")
    with pytest.raises(ValueError):
        ConversationHistory(limit=0)


def test_store_creates_history_per_session() -> None:
    store = ConversationStore(limit=3)
    first = store.get("a")
    assert store.get("a") is first
    assert "a" in store
    assert store.get("b") is not first
    assert len(store) == 2
    assert first.limit == 3

    assert store.drop("a") is True
    assert store.drop("a") is False
    assert "a" not in store
    first.clear()
    assert len(first) == 0


@hypothesis.given(
    st.integers(min_value=1, max_value=10),
    st.lists(st.text(min_size=1, max_size=5), max_size=40),
)
def test_history_keeps_most_recent_window(limit: int, contents: list[str]) -> None:
    history = ConversationHistory(limit=limit)
    for content in contents:
        history.append("user", content)

    assert len(history) == min(limit, len(contents))
    assert [turn.content for turn in history.turns()] == contents[-limit:]
