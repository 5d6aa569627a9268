import pytest

from conftest import assistant, human
from context_assembly.interaction import Interaction
from context_assembly.prompts import context_message_with_response
from context_assembly.store import TranscriptStore
from context_assembly.transcript import Transcript, TranscriptFormatError


@pytest.fixture
def store(tmp_path):
    return TranscriptStore(tmp_path / "transcripts")


def _transcript() -> Transcript:
    context = context_message_with_response("snippet", "src/a.py")
    return Transcript(
        [
            Interaction(human("q1"), assistant("a1"), context, "2024-03-01T09:00:00.000Z"),
            Interaction(human("q2", "shown q2"), assistant("a2"), None, "2024-03-01T09:05:00.000Z"),
        ],
        id="2024-03-01T09:00:00.000Z",
    )


def test_path_for_makes_ids_filesystem_safe(store):
    path = store.path_for("2024-03-01T09:00:00.000Z")
    assert path.name == "2024-03-01T09_00_00.000Z.json"
    assert store.path_for("../../etc/passwd").parent == store.storage_dir


@pytest.mark.asyncio
async def test_save_and_load(store):
    original = _transcript()

    path = await store.save(original)
    restored = await store.load(original.id)

    assert path.exists()
    assert restored.id == original.id
    assert [i.human_message.text for i in restored] == ["q1", "q2"]
    assert restored.interactions[1].human_message.display_text == "shown q2"
    assert restored.interactions[0].context_files() == ["src/a.py"]


@pytest.mark.asyncio
async def test_save_resolves_pending_context(store):
    async def fetch():
        return context_message_with_response("lazy", "lazy.py")

    transcript = Transcript([Interaction(human("q"), assistant("a"), fetch)], id="t1")

    await store.save(transcript)
    restored = await store.load("t1")

    assert restored.interactions[0].context_files() == ["lazy.py"]


@pytest.mark.asyncio
async def test_load_missing_returns_none(store):
    assert await store.load("never-saved") is None


@pytest.mark.asyncio
async def test_load_corrupt_file_raises(store):
    store.storage_dir.mkdir(parents=True)
    store.path_for("bad").write_text("{not json")

    with pytest.raises(TranscriptFormatError):
        await store.load("bad")


@pytest.mark.asyncio
async def test_delete(store):
    transcript = _transcript()
    await store.save(transcript)

    assert await store.delete(transcript.id) is True
    assert await store.delete(transcript.id) is False
    assert await store.load(transcript.id) is None


@pytest.mark.asyncio
async def test_list_paths(store):
    assert store.list_paths() == []

    await store.save(Transcript([Interaction(human("q"), assistant("a"))], id="one"))
    await store.save(Transcript([Interaction(human("q"), assistant("a"))], id="two"))

    assert {path.stem for path in store.list_paths()} == {"one", "two"}
