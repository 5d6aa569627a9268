import pytest

from context_assembly.models import Message, PromptBudget, Speaker
from context_assembly.tokens import (
    TokenEstimator,
    estimate_text_tokens,
    estimate_tokens,
    truncate_text,
)


def test_estimate_uses_chars_per_token():
    message = Message(speaker=Speaker.HUMAN, text="x" * 400)
    assert estimate_tokens(message) == 100


def test_empty_and_missing_text_cost_nothing():
    assert estimate_tokens(Message(speaker=Speaker.ASSISTANT)) == 0
    assert estimate_tokens(None) == 0
    assert estimate_text_tokens("") == 0
    assert estimate_text_tokens(None) == 0


def test_rounds_half_up():
    # 10 / 4 = 2.5
    assert estimate_text_tokens("x" * 10) == 3
    # 9 / 4 = 2.25
    assert estimate_text_tokens("x" * 9) == 2
    # 2 / 4 = 0.5
    assert estimate_text_tokens("xx") == 1


def test_display_text_is_not_counted():
    message = Message(speaker=Speaker.HUMAN, text="abcd", display_text="a" * 1000)
    assert estimate_tokens(message) == 1


def test_estimator_bound_to_budget_ratio():
    estimator = TokenEstimator.from_budget(PromptBudget(chars_per_token=2.0))
    assert estimator.estimate_text("x" * 10) == 5
    assert estimator.estimate_many([
        Message(speaker=Speaker.HUMAN, text="x" * 4),
        Message(speaker=Speaker.ASSISTANT, text="x" * 6),
    ]) == 5


def test_estimator_rejects_non_positive_ratio():
    with pytest.raises(ValueError):
        TokenEstimator(0)


def test_truncate_text_keeps_prefix():
    assert truncate_text("abcdefghij", 2) == "abcdefgh"
    assert truncate_text("short", 10) == "short"
    assert TokenEstimator(1.0).truncate("abcdef", 3) == "abc"
