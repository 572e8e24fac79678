import asyncio

from packt.downloader import COURSE_INFO_FILE, DownloadOrchestrator, render_course_info
from packt.models import Chapter, Course, DownloadState, MediaCandidate, Playlist, SourceKind, Video


def resolved(title, order, url=None, kind=SourceKind.MP4):
    video = Video(title=title, order=order, page_url=f"https://x/page/{order}")
    url = url or f"https://cdn.example.com/{order}.mp4"
    return video.resolve(MediaCandidate(url=url, kind=kind, origin="test"))


def course(*chapters, title="Python <Basics>: Part 1"):
    return Course(
        title=title,
        author="Jane Doe",
        description="Learn & practice",
        source_url=f"https://x/{title}",
        chapters=chapters,
    )


def orchestrator(tmp_path, fetch, **kwargs):
    return DownloadOrchestrator(tmp_path, fetch=fetch, progress=False, **kwargs)


async def test_existing_file_is_skipped_without_fetching(tmp_path, fake_fetch):
    dest = tmp_path / "video.mp4"
    dest.write_bytes(b"already here")

    result = await orchestrator(tmp_path, fake_fetch).download_video(resolved("A", 1), dest)

    assert result.download_state is DownloadState.SKIPPED
    assert fake_fetch.calls == []
    assert dest.read_bytes() == b"already here"


async def test_empty_file_is_downloaded_again(tmp_path, fake_fetch):
    dest = tmp_path / "video.mp4"
    dest.touch()

    result = await orchestrator(tmp_path, fake_fetch).download_video(resolved("A", 1), dest)

    assert result.download_state is DownloadState.DOWNLOADED
    assert len(fake_fetch.calls) == 1


async def test_failed_fetch_removes_partial_file(tmp_path, fake_fetch):
    video = resolved("A", 1)
    fake_fetch.failing.add(video.download_url)
    dest = tmp_path / "chapter" / "01 A.mp4"

    result = await orchestrator(tmp_path, fake_fetch).download_video(video, dest)

    assert result.download_state is DownloadState.FAILED
    assert "stream reset" in result.error
    assert not dest.exists()


async def test_fetch_gets_referer_and_auth_headers(tmp_path, fake_fetch):
    video = resolved("A", 1)
    await orchestrator(tmp_path, fake_fetch, headers={"Cookie": "session=abc"}).download_video(
        video, tmp_path / "a.mp4"
    )

    (_, _, headers), = fake_fetch.calls
    assert headers["Referer"] == video.page_url
    assert headers["Cookie"] == "session=abc"
    assert "User-Agent" in headers


async def test_unresolved_and_streaming_videos_fail_without_fetching(tmp_path, fake_fetch):
    downloader = orchestrator(tmp_path, fake_fetch)
    pending = Video(title="P", order=1, page_url="https://x/p")
    stream = resolved("S", 2, url="https://cdn.example.com/hls/master.m3u8", kind=SourceKind.HLS)

    assert (await downloader.download_video(pending, tmp_path / "p.mp4")).error == "no download url"
    result = await downloader.download_video(stream, tmp_path / "s.mp4")
    assert result.download_state is DownloadState.FAILED
    assert "unsupported streaming format" in result.error
    assert fake_fetch.calls == []


async def test_build_course_layout_and_summary(tmp_path, fake_fetch):
    c = course(
        Chapter(title="3. Intro", order=1, videos=[resolved("3. Intro", 1), resolved("1. Intro", 2)]),
        Chapter(title="Basics", order=2, videos=[resolved("Variables", 1)]),
    )
    updated, summary = await orchestrator(tmp_path, fake_fetch).build_course(c)

    root = tmp_path / "Python Basics Part 1"
    assert (root / "01 Intro" / "01 Intro.mp4").exists()
    assert (root / "01 Intro" / "02 Intro.mp4").exists()
    assert (root / "02 Basics" / "01 Variables.mp4").exists()
    assert (root / COURSE_INFO_FILE).exists()

    assert (summary.downloaded, summary.skipped, summary.failed) == (3, 0, 0)
    assert all(v.download_state is DownloadState.DOWNLOADED for _, v in updated.iter_videos())
    assert updated.total_video_count == 3

    # second run only skips
    _, again = await orchestrator(tmp_path, fake_fetch).build_course(updated)
    assert (again.downloaded, again.skipped, again.failed) == (0, 3, 0)
    assert len(fake_fetch.calls) == 3


async def test_colliding_course_titles_get_suffixes(tmp_path, fake_fetch):
    downloader = orchestrator(tmp_path, fake_fetch)
    first = course(title="Same: Title")
    second = first.model_copy(update={"source_url": "https://x/other"})

    assert downloader.course_dir(first).name == "Same Title"
    assert downloader.course_dir(second).name == "Same Title (2)"
    assert downloader.course_dir(first).name == "Same Title"


async def test_placeholder_course_is_not_built(tmp_path, fake_fetch):
    _, summary = await orchestrator(tmp_path, fake_fetch).build_course(Course.placeholder("https://x", "boom"))
    assert summary.total == 0
    assert list(tmp_path.iterdir()) == []


async def test_workers_download_concurrently_in_order(tmp_path):
    running, peak = 0, 0

    async def slow_fetch(url, path, headers=None):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"data")
        running -= 1

    c = course(Chapter(title="Only", order=1, videos=[resolved(f"V{n}", n) for n in range(1, 7)]))
    updated, summary = await orchestrator(tmp_path, slow_fetch, workers=3).build_course(c)

    assert summary.downloaded == 6
    assert 1 < peak <= 3
    assert [v.title for _, v in updated.iter_videos()] == [f"V{n}" for n in range(1, 7)]


async def test_build_and_download_playlist(tmp_path, fake_fetch):
    playlist = Playlist(
        id="1",
        title="P",
        url="https://x/p",
        courses=[course(Chapter(title="A", order=1, videos=[resolved("V", 1)]))],
    )
    updated, summaries = await orchestrator(tmp_path, fake_fetch).build_and_download(playlist)

    assert [s.downloaded for s in summaries] == [1]
    assert updated.courses[0].chapters[0].videos[0].download_state is DownloadState.DOWNLOADED


def test_course_info_is_escaped():
    html = render_course_info(course(Chapter(title="1. <Intro>", order=1, videos=[resolved("Hi & bye", 1)])))
    assert "<h1>Python &lt;Basics&gt;: Part 1</h1>" in html
    assert "Learn &amp; practice" in html
    assert "01 Hi &amp; bye" in html
    assert "Table of Contents (1 videos)" in html


async def test_same_destination_is_fetched_once(tmp_path, fake_fetch):
    downloader = orchestrator(tmp_path, fake_fetch)
    dest = tmp_path / "shared.mp4"

    first, second = await asyncio.gather(
        downloader.download_video(resolved("A", 1), dest),
        downloader.download_video(resolved("A", 1), dest),
    )

    assert {first.download_state, second.download_state} == {DownloadState.DOWNLOADED, DownloadState.SKIPPED}
    assert len(fake_fetch.calls) == 1
    assert downloader._locks == {}


async def test_path_locks_are_released_after_a_course(tmp_path, fake_fetch):
    downloader = orchestrator(tmp_path, fake_fetch, workers=2)
    c = course(Chapter(title="Only", order=1, videos=[resolved(f"V{n}", n) for n in range(1, 4)]))

    await downloader.build_course(c)

    assert downloader._locks == {}
