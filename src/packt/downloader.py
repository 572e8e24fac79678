import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from html import escape
from pathlib import Path
from typing import Awaitable, Callable

import aiofiles
from tqdm import tqdm

from .constants import BAR_ASCII, BAR_FORMAT, HEADERS, MEDIA_EXTENSION
from .exceptions import DownloadFailed
from .logger import Logger
from .models import Course, DownloadState, DownloadSummary, Playlist, Video
from .utils import download, ordinal_name, safe_path, sanitize

Fetch = Callable[..., Awaitable[None]]

COURSE_INFO_FILE = "Course Info.html"


def render_course_info(course: Course) -> str:
    chapters = []
    for chapter_position, chapter in enumerate(course.chapters, 1):
        videos = "\n".join(
            f"        <li>{escape(ordinal_name(position, video.title))}</li>"
            for position, video in enumerate(chapter.videos, 1)
        )
        chapters.append(
            f"    <li>{escape(ordinal_name(chapter_position, chapter.title))}\n"
            f"      <ol>\n{videos}\n      </ol>\n    </li>"
        )

    toc = "\n".join(chapters)
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{escape(course.title)}</title>
</head>
<body>
  <h1>{escape(course.title)}</h1>
  <p><strong>Author:</strong> {escape(course.author)}</p>
  <p><strong>Source:</strong> <a href="{escape(course.source_url)}">{escape(course.source_url)}</a></p>
  <p>{escape(course.description)}</p>
  <h2>Table of Contents ({course.total_video_count} videos)</h2>
  <ol>
{toc}
  </ol>
  <p><em>Downloaded on {datetime.now().strftime("%Y-%m-%d %H:%M")}</em></p>
</body>
</html>
"""


class DownloadOrchestrator:
    """
    Turn a resolved catalog into files on disk.

    Layout: ``<output>/<Course>/<NN Chapter>/<NN Video>.mp4``. A destination
    that already holds a non-empty file is never fetched again. Downloads
    never touch the browser page, so with ``workers > 1`` they run
    concurrently, one transfer per destination path at a time.
    """

    def __init__(
        self,
        output_root: Path,
        fetch: Fetch = download,
        workers: int = 1,
        headers: dict[str, str] | None = None,
        progress: bool = True,
    ):
        self.output_root = Path(output_root)
        self.fetch = fetch
        self.workers = max(1, workers)
        self.headers = {**HEADERS, **(headers or {})}
        self.progress = progress

        self._locks: dict[Path, tuple[asyncio.Lock, int]] = {}
        self._course_dirs: dict[str, str] = {}

    def course_dir(self, course: Course) -> Path:
        """Directory for ``course``; colliding titles get a numeric suffix."""
        base = sanitize(course.title)
        name, n = base, 2
        while self._course_dirs.get(name, course.source_url) != course.source_url:
            name = f"{base} ({n})"
            n += 1
        self._course_dirs[name] = course.source_url
        return self.output_root / name

    @staticmethod
    def video_path(course_dir: Path, chapter_position: int, chapter_title: str,
                   video_position: int, video_title: str) -> Path:
        chapter_dir = course_dir / ordinal_name(chapter_position, chapter_title)
        filename = f"{ordinal_name(video_position, video_title)}{MEDIA_EXTENSION}"
        return safe_path(chapter_dir / filename)

    async def build_and_download(self, playlist: Playlist) -> tuple[Playlist, list[DownloadSummary]]:
        courses, summaries = [], []
        for course in playlist.courses:
            course, summary = await self.build_course(course)
            courses.append(course)
            summaries.append(summary)
        return playlist.with_courses(courses), summaries

    async def build_course(self, course: Course) -> tuple[Course, DownloadSummary]:
        if course.error:
            Logger.warning(f"Skipping {course.source_url}, it could not be extracted")
            return course, DownloadSummary()

        course_dir = self.course_dir(course)
        course_dir.mkdir(parents=True, exist_ok=True)
        await self.write_course_info(course, course_dir)

        jobs = [
            (chapter_position, video_position, video)
            for chapter_position, chapter in enumerate(course.chapters, 1)
            for video_position, video in enumerate(chapter.videos, 1)
        ]
        semaphore = asyncio.Semaphore(self.workers)
        summary = DownloadSummary()

        with tqdm(
            total=len(jobs),
            desc=f"Downloading {course.title[:40]}",
            bar_format=BAR_FORMAT,
            ascii=BAR_ASCII,
            colour="green",
            disable=not self.progress,
        ) as bar:

            async def run(chapter_position: int, video_position: int, video: Video):
                chapter = course.chapters[chapter_position - 1]
                dest = self.video_path(
                    course_dir, chapter_position, chapter.title, video_position, video.title
                )
                async with semaphore:
                    result, outcome = await self._download(video, dest)
                summary.record(outcome)
                bar.update(1)
                return result

            results = await asyncio.gather(*(run(*job) for job in jobs))

        # gather keeps job order, rebuild the tree in the same order
        done = iter(results)
        chapters = [
            chapter.with_videos([next(done) for _ in chapter.videos]) for chapter in course.chapters
        ]

        Logger.info(
            f"{course.title}: {summary.downloaded} downloaded, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return course.with_chapters(chapters), summary

    async def download_video(self, video: Video, dest: Path) -> Video:
        result, _ = await self._download(video, dest)
        return result

    async def _download(self, video: Video, dest: Path) -> tuple[Video, DownloadState]:
        """Returns the new video and what happened to it in this run."""
        async with self._locked(dest):
            if dest.exists() and dest.stat().st_size > 0:
                Logger.debug(f"Already downloaded: {dest}")
                if video.download_state.is_terminal:
                    return video, DownloadState.SKIPPED
                return video.transition(DownloadState.SKIPPED), DownloadState.SKIPPED

            if video.download_state.is_terminal:
                if video.download_state is DownloadState.FAILED:
                    return video, DownloadState.FAILED
                # recorded as done but the file is gone: report it, never move backwards
                Logger.warning(f"'{video.title}' was {video.download_state.value} but {dest} is missing")
                return video, DownloadState.FAILED

            if video.download_state is not DownloadState.RESOLVED or not video.download_url:
                return self._failed(video, "no download url")

            if video.source_kind is not None and video.source_kind.is_streaming:
                return self._failed(video, f"unsupported streaming format ({video.source_kind.value})")

            headers = {**self.headers, "Referer": video.page_url}
            try:
                await self.fetch(video.download_url, dest, headers=headers)
                if not dest.exists() or dest.stat().st_size == 0:
                    raise DownloadFailed(f"empty file from {video.download_url}")
            except Exception as e:
                dest.unlink(missing_ok=True)
                Logger.error(f"Failed to download '{video.title}': {e}", exception=e)
                return self._failed(video, str(e))

            return video.transition(DownloadState.DOWNLOADED), DownloadState.DOWNLOADED

    async def write_course_info(self, course: Course, course_dir: Path) -> Path:
        path = course_dir / COURSE_INFO_FILE
        async with aiofiles.open(path, "w", encoding="utf-8") as file:
            await file.write(render_course_info(course))
        return path

    @asynccontextmanager
    async def _locked(self, dest: Path):
        """One transfer per destination; the entry is dropped when its last user leaves."""
        lock, users = self._locks.get(dest, (None, 0))
        lock = lock or asyncio.Lock()
        self._locks[dest] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._locks[dest]
            if users == 1:
                del self._locks[dest]
            else:
                self._locks[dest] = (lock, users - 1)

    @staticmethod
    def _failed(video: Video, reason: str) -> tuple[Video, DownloadState]:
        Logger.warning(f"'{video.title}': {reason}")
        return video.fail(reason), DownloadState.FAILED
