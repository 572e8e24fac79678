import asyncio

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Request
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from tqdm import tqdm

from .collectors import ENGINE
from .constants import (
    BAR_ASCII,
    BAR_FORMAT,
    CLICK_TIMEOUT,
    CONTENT_WAIT,
    NAVIGATION_TIMEOUT,
    PLAY_WAIT,
)
from .exceptions import VideoUnresolved
from .locators import Scope, SelectorEngine, Target
from .logger import Logger
from .models import Course, DownloadState, Playlist, Video

# currentSrc only lives on the DOM object, copy it into the markup snapshot
MARK_CURRENT_SRC_JS = """
() => {
    for (const video of document.querySelectorAll('video')) {
        if (video.currentSrc) {
            video.setAttribute('data-current-src', video.currentSrc);
        }
    }
}
"""

SCROLL_INTO_VIEW_JS = """
(selector) => {
    const element = document.querySelector(selector);
    if (element) element.scrollIntoView({block: 'center'});
}
"""


class VideoResolver:
    """Find a direct media URL for each video page, one page visit at a time."""

    def __init__(
        self,
        page: Page,
        engine: SelectorEngine = ENGINE,
        settle_wait: float = CONTENT_WAIT,
        play_wait: float = PLAY_WAIT,
        progress: bool = True,
    ):
        self.page = page
        self.engine = engine
        self.settle_wait = settle_wait
        self.play_wait = play_wait
        self.progress = progress

    async def resolve_video(self, video: Video, retry: bool = False) -> Video:
        if retry and video.download_state in (DownloadState.FAILED, DownloadState.RESOLVED):
            video = video.reset_for_retry()

        if video.download_url is not None or video.download_state.is_terminal:
            return video

        requests: list[str] = []

        def on_request(request: Request) -> None:
            requests.append(request.url)

        # listen before navigating so the very first media request is seen
        self.page.on("request", on_request)
        try:
            await self.page.goto(
                video.page_url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT
            )
            await self._wait_for_player()
            await self._start_playback()
            await self.page.evaluate(MARK_CURRENT_SRC_JS)
            scope = await Scope.from_page(self.page, network_urls=list(requests))
        except (PlaywrightError, asyncio.TimeoutError) as e:
            return self._unresolved(video, f"page error: {e}")
        finally:
            self.page.remove_listener("request", on_request)

        found = self.engine.resolve(Target.VIDEO_SOURCE, scope)
        if found is None:
            return self._unresolved(video, "no media source found")

        candidate = found.value
        if candidate.kind.is_streaming:
            Logger.warning(
                f"'{video.title}': only a {candidate.kind.value.upper()} stream was found, "
                "it can't be downloaded as a single file"
            )
        Logger.debug(f"'{video.title}': {candidate.url} ({found.strategy})")
        return video.resolve(candidate)

    async def resolve_course(self, course: Course, retry: bool = False) -> Course:
        chapters = []
        with tqdm(
            total=course.total_video_count,
            desc=f"Resolving {course.title[:40]}",
            bar_format=BAR_FORMAT,
            ascii=BAR_ASCII,
            colour="cyan",
            disable=not self.progress,
        ) as bar:
            for chapter in course.chapters:
                videos = []
                for video in chapter.videos:
                    videos.append(await self.resolve_video(video, retry=retry))
                    bar.update(1)
                chapters.append(chapter.with_videos(videos))
        return course.with_chapters(chapters)

    async def resolve_playlist(self, playlist: Playlist, retry: bool = False) -> Playlist:
        courses = [await self.resolve_course(course, retry=retry) for course in playlist.courses]
        return playlist.with_courses(courses)

    async def _wait_for_player(self) -> None:
        try:
            await self.page.wait_for_selector("video", timeout=self.settle_wait * 1000)
        except PlaywrightTimeoutError:
            Logger.debug(f"No <video> element on {self.page.url}")

    async def _start_playback(self) -> None:
        """Best effort: a click often makes the player request its source."""
        scope = await Scope.from_page(self.page)
        selector = self.engine.value(Target.PLAY_CONTROL, scope)
        if selector is None:
            return

        try:
            await self.page.evaluate(SCROLL_INTO_VIEW_JS, selector)
            await self.page.click(selector, timeout=CLICK_TIMEOUT)
        except PlaywrightError as e:
            Logger.debug(f"Play control {selector} not clickable: {e}")
            return

        await asyncio.sleep(self.play_wait)

    @staticmethod
    def _unresolved(video: Video, reason: str) -> Video:
        Logger.warning(str(VideoUnresolved(f"'{video.title}': {reason}")))
        return video.fail(reason)
