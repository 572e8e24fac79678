import pytest

from packt.cache import Cache
from packt.models import Chapter, Course, DownloadState, MediaCandidate, Playlist, SourceKind, Video


@pytest.fixture(autouse=True)
def cache_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(Cache, "directory", tmp_path / "cache")
    return tmp_path / "cache"


def playlist():
    video = Video(title="One", order=1, page_url="https://x/v1").resolve(
        MediaCandidate(url="https://cdn/x.mp4", kind=SourceKind.MP4, origin="player element")
    )
    course = Course(
        title="C",
        source_url="https://x/c",
        chapters=[Chapter(title="A", order=1, videos=[video, Video(title="Two", order=2, page_url="https://x/v2")])],
    )
    return Playlist(id="123", title="Mine", url="https://x/p/123", courses=[course, Course.placeholder("https://x/bad", "boom")])


def test_round_trip_keeps_states():
    original = playlist()
    path = Cache.save(original)

    assert path.name == "123.json"
    loaded = Cache.load("123")
    assert loaded == original
    states = [v.download_state for _, v in loaded.courses[0].iter_videos()]
    assert states == [DownloadState.RESOLVED, DownloadState.PENDING]
    assert loaded.courses[1].error == "boom"


def test_missing_entry():
    assert Cache.load("nope") is None


def test_corrupt_entry_is_ignored(cache_dir):
    cache_dir.mkdir(parents=True)
    (cache_dir / "123.json").write_text("{not json", encoding="utf-8")
    assert Cache.load("123") is None

    (cache_dir / "123.json").write_text('{"id": "123"}', encoding="utf-8")
    assert Cache.load("123") is None


def test_clear(cache_dir):
    Cache.save(playlist())
    Cache.clear()
    assert not cache_dir.exists()
    # clearing twice is fine
    Cache.clear()
