import json
import random

import pytest

from conftest import assistant, human
from context_assembly.interaction import Interaction, is_valid_timestamp
from context_assembly.models import ContextMessage, Message, PromptBudget, Speaker
from context_assembly.prompts import context_message_with_response
from context_assembly.tokens import TokenEstimator
from context_assembly.transcript import (
    SERVER_ERROR_TEXT,
    Transcript,
    TranscriptFormatError,
    truncate_prompt,
)


def _pair(index: int, human_chars: int = 40, assistant_chars: int = 40) -> list[Message]:
    tag = f"{index:03d}"
    return [
        human(tag + "h" * (human_chars - len(tag))),
        assistant(tag + "a" * (assistant_chars - len(tag))),
    ]


def _interaction(index: int, context=None, timestamp: str | None = None) -> Interaction:
    human_message, assistant_message = _pair(index)
    return Interaction(
        human_message,
        assistant_message,
        context,
        timestamp or f"2024-01-01T00:00:{index:02d}.000Z",
    )


# =============================================================================
# truncate_prompt
# =============================================================================


def test_keeps_everything_under_budget():
    messages = _pair(1) + _pair(2)
    assert truncate_prompt(messages, 1000) == messages


def test_ten_pairs_of_600_tokens_keep_last_three():
    # 2000 + 400 chars = 500 + 100 tokens per pair
    messages = [m for i in range(10) for m in _pair(i, 2000, 400)]

    kept = truncate_prompt(messages, 1800)

    assert kept == messages[-6:]
    assert [m.text[:3] for m in kept[::2]] == ["007", "008", "009"]


def test_stops_at_first_pair_that_does_not_fit():
    big = _pair(1, 4000, 40)
    small_old = _pair(0)
    newest = _pair(2)

    kept = truncate_prompt(small_old + big + newest, 100)

    # the small older pair would fit, but the greedy walk stops at the big one
    assert kept == newest


def test_pair_larger_than_budget_is_dropped_whole():
    assert truncate_prompt(_pair(1, 4000, 4000), 500) == []


def test_unpaired_oldest_message_is_never_emitted():
    orphan = human("orphan question")
    messages = [orphan] + _pair(1)
    kept = truncate_prompt(messages, 10_000)
    assert kept == _pair(1)


def test_zero_or_negative_budget_keeps_nothing_but_empty_pairs():
    assert truncate_prompt(_pair(1), 0) == []
    empty_pair = [human(""), assistant("")]
    assert truncate_prompt(empty_pair, 0) == empty_pair


def test_budget_invariant_and_pair_atomicity():
    rng = random.Random(7)
    estimator = TokenEstimator()
    for _ in range(200):
        count = rng.randint(0, 12)
        messages = [
            m for i in range(count)
            for m in _pair(i, rng.randint(3, 800), rng.randint(3, 800))
        ]
        max_tokens = rng.randint(0, 1500)

        kept = truncate_prompt(messages, max_tokens)

        assert estimator.estimate_many(kept) <= max_tokens
        assert len(kept) % 2 == 0
        assert all(m.speaker == Speaker.HUMAN for m in kept[0::2])
        assert all(m.speaker == Speaker.ASSISTANT for m in kept[1::2])
        # recency: always a contiguous suffix of the input
        assert kept == (messages[len(messages) - len(kept):] if kept else [])


# =============================================================================
# Transcript identity & mutation
# =============================================================================


def test_explicit_id_wins():
    transcript = Transcript([_interaction(1)], id="t1")
    assert transcript.id == "t1"


def test_id_from_earliest_valid_timestamp():
    interactions = [
        _interaction(1, timestamp="not-a-date"),
        _interaction(2, timestamp="2023-05-01T10:00:00.000Z"),
        _interaction(3, timestamp="2023-05-02T10:00:00.000Z"),
    ]
    transcript = Transcript(interactions)
    assert transcript.id == "2023-05-01T10:00:00.000Z"
    assert transcript.last_interaction_timestamp == "2023-05-02T10:00:00.000Z"


def test_id_falls_back_to_now():
    transcript = Transcript([_interaction(1, timestamp="garbage")])
    assert is_valid_timestamp(transcript.id)
    assert is_valid_timestamp(transcript.last_interaction_timestamp)


def test_empty_transcript_mutations_are_noops():
    transcript = Transcript(id="t1")
    transcript.remove_last_interaction()
    transcript.add_assistant_response("hello")
    transcript.add_error_as_assistant_response("boom")
    transcript.add_interaction(None)
    assert transcript.is_empty
    assert transcript.get_last_interaction() is None


def test_add_assistant_response_targets_last_interaction():
    first, second = _interaction(1), _interaction(2)
    transcript = Transcript([first, second])

    transcript.add_assistant_response("answer", "**answer**")

    assert second.get_assistant_message().text == "answer"
    assert second.get_assistant_message().display_text == "**answer**"
    assert first.get_assistant_message().text.startswith("001")


def test_error_response_keeps_displayed_text():
    interaction = Interaction(human("q"), assistant("partial", "partial answer"))
    transcript = Transcript([interaction])

    transcript.add_error_as_assistant_response("rate limited")

    message = interaction.get_assistant_message()
    assert message.text == SERVER_ERROR_TEXT
    assert message.display_text.startswith("partial answer")
    assert "rate limited" in message.display_text


def test_reset_clears_and_assigns_new_id():
    transcript = Transcript([_interaction(1)], id="t1")
    transcript.reset()
    assert transcript.is_empty
    assert transcript.id != "t1"
    assert is_valid_timestamp(transcript.id)


def test_remove_last_interaction():
    transcript = Transcript([_interaction(1), _interaction(2)])
    transcript.remove_last_interaction()
    assert len(transcript) == 1


# =============================================================================
# Prompt assembly
# =============================================================================


@pytest.mark.asyncio
async def test_empty_transcript_yields_preamble_only():
    preamble = [human("You are a coding assistant."), assistant("Understood.")]
    assert await Transcript().to_prompt(preamble) == preamble
    assert await Transcript().to_prompt() == []


@pytest.mark.asyncio
async def test_context_only_from_latest_interaction_with_context():
    older_context = context_message_with_response("old snippet", "old.py")
    newer_context = context_message_with_response("new snippet", "new.py")
    transcript = Transcript([
        _interaction(1, older_context),
        _interaction(2, newer_context),
        _interaction(3, []),
    ])

    prompt = await transcript.to_prompt()

    context = [m for m in prompt if isinstance(m, ContextMessage)]
    assert [m.file for m in context] == ["new.py", "new.py"]
    texts = [m.text for m in prompt]
    # context sits right before the human turn it grounds
    assert texts.index("new snippet") == texts.index(_pair(2)[0].text) - 2


@pytest.mark.asyncio
async def test_pending_context_is_resolved_for_prompt():
    async def fetch():
        return context_message_with_response("lazy snippet", "lazy.py")

    transcript = Transcript([_interaction(1, fetch)])
    prompt = await transcript.to_prompt()

    assert prompt[0].text == "lazy snippet"
    assert len(prompt) == 4


@pytest.mark.asyncio
async def test_prompt_drops_display_text():
    transcript = Transcript([Interaction(human("q", "shown q"), assistant("a", "shown a"))])
    prompt = await transcript.to_prompt()
    assert all(m.display_text is None for m in prompt)


@pytest.mark.asyncio
async def test_preamble_consumes_budget():
    budget = PromptBudget(max_available_prompt_length=50)
    # 20 tokens per pair
    interactions = [
        Interaction(human("h" * 40), assistant("a" * 40), timestamp=f"2024-01-01T00:00:0{i}Z")
        for i in range(3)
    ]
    preamble = [human("p" * 40)]  # 10 tokens

    prompt = await Transcript(interactions, budget=budget).to_prompt(preamble)

    # 50 - 10 = 40 tokens: the two newest pairs
    assert prompt[0] == preamble[0]
    assert len(prompt) == 5


@pytest.mark.asyncio
async def test_to_chat_attaches_context_files():
    context = context_message_with_response("snippet", "src/a.py")
    interaction = _interaction(1, context)
    await interaction.context.get()

    chat = Transcript([interaction]).to_chat()

    assert [m.speaker for m in chat] == [Speaker.HUMAN, Speaker.ASSISTANT]
    assert chat[0].context_files == ["src/a.py"]
    assert chat[0].timestamp == interaction.timestamp


def test_to_chat_does_not_wait_for_pending_context():
    async def fetch():
        raise AssertionError("must not be fetched")

    chat = Transcript([_interaction(1, fetch)]).to_chat()
    assert chat[0].context_files == []


# =============================================================================
# Serialization
# =============================================================================


def test_from_json_empty_transcript():
    transcript = Transcript.from_json({
        "id": "t1",
        "interactions": [],
        "lastInteractionTimestamp": "2023-01-01T00:00:00Z",
    })
    assert transcript.is_empty
    assert transcript.id == "t1"


@pytest.mark.asyncio
async def test_round_trip_preserves_id_and_messages():
    context = context_message_with_response("snippet", "src/a.py")
    original = Transcript([_interaction(1, context), _interaction(2)], id="conv-1")

    data = await original.to_json()
    restored = Transcript.from_json(data.model_dump(by_alias=True))

    assert restored.id == original.id
    assert len(restored) == len(original)
    for before, after in zip(original, restored):
        assert after.human_message.text == before.human_message.text
        assert after.get_assistant_message().text == before.get_assistant_message().text
        assert after.timestamp == before.timestamp
    assert restored.interactions[0].context.peek() == context


def test_json_uses_camel_case_keys():
    transcript = Transcript([Interaction(human("q", "shown"), assistant("a"), timestamp="2024-01-01T00:00:00Z")])

    data = json.loads(transcript.dumps())

    assert set(data) == {"id", "interactions", "lastInteractionTimestamp"}
    item = data["interactions"][0]
    assert set(item) == {"humanMessage", "assistantMessage", "context", "timestamp"}
    assert item["humanMessage"]["displayText"] == "shown"


def test_blocking_serialization_resolves_pending_context():
    async def fetch():
        return context_message_with_response("snippet", "a.py")

    data = Transcript([_interaction(1, fetch)], id="t").to_json_blocking()

    assert [m.file for m in data.interactions[0].context] == ["a.py", "a.py"]


def test_from_json_accepts_json_text_and_defaults_timestamp():
    text = json.dumps({
        "id": "t2",
        "interactions": [{
            "humanMessage": {"speaker": "human", "text": "q"},
            "assistantMessage": {"speaker": "assistant", "text": "a"},
            "context": [],
        }],
        "lastInteractionTimestamp": "2023-01-01T00:00:00Z",
    })
    transcript = Transcript.from_json(text)
    assert is_valid_timestamp(transcript.interactions[0].timestamp)


@pytest.mark.parametrize("data", [
    {"interactions": []},
    {"id": "t1"},
    {"id": "t1", "interactions": [{"humanMessage": {"speaker": "human", "text": "q"}}]},
    {"id": "t1", "interactions": [{
        "humanMessage": {"speaker": "assistant", "text": "q"},
        "assistantMessage": {"speaker": "assistant", "text": "a"},
    }]},
    {"id": "t1", "interactions": [{
        "humanMessage": {"speaker": "human", "text": "q"},
        "assistantMessage": {"speaker": "human", "text": "a"},
    }]},
    "not json",
])
def test_malformed_data_raises_format_error(data):
    with pytest.raises(TranscriptFormatError):
        Transcript.from_json(data)


def test_interaction_rejects_swapped_speakers():
    with pytest.raises(ValueError):
        Interaction(human("q"), human("not an answer"))
    with pytest.raises(ValueError):
        Interaction(assistant("q"))
