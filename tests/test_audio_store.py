import os

import pytest

from voice_chorus.storage import INITIAL_AUDIO_NAME, AudioStore


@pytest.fixture
def store(tmp_path) -> AudioStore:
    s = AudioStore(tmp_path / "audio", retention=3)
    s.initialize()
    return s


def test_initialize_creates_layout(store):
    assert store.uploads_dir.is_dir()
    assert store.responses_dir.is_dir()
    assert store.initial_dir.is_dir()


def test_upload_is_written_then_discarded(store):
    path = store.save_upload(b"RIFF....")

    assert path.parent == store.uploads_dir
    assert path.suffix == ".wav"
    assert path.read_bytes() == b"RIFF...."

    store.discard(path)
    assert not path.exists()
    # Discarding twice is harmless.
    store.discard(path)


def test_last_audio_fallbacks(store):
    assert store.last_audio() is None

    initial = store.initial_dir / INITIAL_AUDIO_NAME
    initial.write_bytes(b"initial")
    assert store.last_audio() == initial

    saved = store.save_response(b"fresh")
    assert store.last_audio() == saved
    assert saved.read_bytes() == b"fresh"


def test_retention_keeps_most_recent(store):
    old = []
    for i, mtime in enumerate([100, 200, 300]):
        p = store.responses_dir / f"response_old_{i}.mp3"
        p.write_bytes(b"x")
        os.utime(p, (mtime, mtime))
        old.append(p)

    latest = store.save_response(b"new")

    remaining = sorted(p.name for p in store.responses_dir.iterdir())
    assert len(remaining) == 3
    assert latest.exists()
    assert not old[0].exists()
    assert old[1].exists()
    assert old[2].exists()


def test_many_saves_stay_within_retention(store):
    saved = [store.save_response(f"r{i}".encode()) for i in range(7)]

    assert len(list(store.responses_dir.iterdir())) == 3
    assert saved[-1].exists()
    assert store.last_audio() == saved[-1]


def test_retention_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        AudioStore(tmp_path, retention=0)
