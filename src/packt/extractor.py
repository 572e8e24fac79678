import asyncio
import re

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .collectors import ENGINE
from .constants import CLICK_TIMEOUT, CONTENT_WAIT, NAVIGATION_TIMEOUT, SCROLL_TIME, playlist_url
from .exceptions import ExtractionDegraded
from .locators import Scope, SelectorEngine, Target
from .logger import Logger
from .models import Course, ExtractionIssue, Playlist
from .utils import progressive_scroll

PLAYLIST_READY = (".title, h1, .course-title", ".course-listing, .course-item, .card")
COURSE_READY = ("h1, .course-title", ".toc, .course-outline, .curriculum, .course-content")


def clean_course_title(title: str) -> str:
    return re.sub(r"\s{2,}", " ", title.replace("[Video]", "")).strip() or "Unknown Course"


class CatalogExtractor:
    """
    Build the skeleton catalog: playlist, courses, chapters and video links.

    Every course is extracted independently; a broken course page becomes a
    placeholder course and the playlist pass goes on.
    """

    def __init__(
        self,
        page: Page,
        engine: SelectorEngine = ENGINE,
        content_wait: float = CONTENT_WAIT,
        scroll_time: float = SCROLL_TIME,
        reveal: bool = True,
    ):
        self.page = page
        self.engine = engine
        self.content_wait = content_wait
        self.scroll_time = scroll_time
        self.reveal = reveal
        self.issues: list[ExtractionIssue] = []

    async def extract_playlist(self, playlist_id: str) -> Playlist:
        url = playlist_url(playlist_id)
        Logger.info(f"Opening playlist {playlist_id}")

        await self._open(url)
        await self._wait_for_content(*PLAYLIST_READY)
        await progressive_scroll(self.page, time=self.scroll_time)

        scope = await Scope.from_page(self.page)
        title = self.engine.value(Target.PLAYLIST_TITLE, scope) or f"Playlist {playlist_id}"
        links = list(dict.fromkeys(self.engine.value(Target.COURSE_LINKS, scope, default=[])))

        if not links:
            Logger.warning(f"No course links found in playlist '{title}'")
        else:
            Logger.info(f"Found {len(links)} courses in '{title}'")

        courses = []
        for index, link in enumerate(links, 1):
            Logger.info(f"[{index}/{len(links)}] {link}")
            courses.append(await self.extract_course(link))

        return Playlist(id=playlist_id, title=title, url=url, courses=courses)

    async def extract_course(self, url: str) -> Course:
        try:
            await self._open(url)
            await self._wait_for_content(*COURSE_READY)
            if self.reveal:
                await self._reveal_content()

            scope = await Scope.from_page(self.page)
            title = clean_course_title(self._field(url, Target.COURSE_TITLE, scope, "Unknown Course"))
            author = self._field(url, Target.COURSE_AUTHOR, scope, "Unknown Author")
            description = self._field(url, Target.COURSE_DESCRIPTION, scope, "")
            chapters = self.engine.value(Target.CHAPTERS, scope, default=[])

            course = Course(
                title=title,
                author=author,
                description=description,
                source_url=url,
                chapters=chapters,
            )
        except Exception as e:
            Logger.error(f"Could not extract course {url}: {e}", exception=e)
            self.issues.append(ExtractionIssue(url=url, field="course", reason=str(e)))
            return Course.placeholder(url, str(e))

        Logger.info(
            f"{course.title}: {len(course.chapters)} chapters, {course.total_video_count} videos"
        )
        return course

    def _field(self, url: str, target: Target, scope: Scope, default: str) -> str:
        value = self.engine.value(target, scope)
        if value:
            return value

        issue = ExtractionDegraded(target.value, f"not found, using '{default}'")
        Logger.warning(f"{url}: {issue}")
        self.issues.append(ExtractionIssue(url=url, field=issue.field, reason=issue.reason))
        return default

    async def _open(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT)

    async def _wait_for_content(self, specific: str, generic: str) -> None:
        """Race a specific selector, a generic container and a fixed delay."""
        timeout = self.content_wait * 1000
        tasks = [
            asyncio.ensure_future(self.page.wait_for_selector(specific, timeout=timeout)),
            asyncio.ensure_future(self.page.wait_for_selector(generic, timeout=timeout)),
            asyncio.ensure_future(asyncio.sleep(self.content_wait)),
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if task.exception() is not None:
                Logger.debug(f"Content wait ended early: {task.exception()}")

    async def _reveal_content(self) -> None:
        scope = await Scope.from_page(self.page)
        selector = self.engine.value(Target.REVEAL_BUTTON, scope)
        if selector is None:
            return

        try:
            await self.page.click(selector, timeout=CLICK_TIMEOUT)
            await self.page.wait_for_load_state("domcontentloaded")
        except PlaywrightError as e:
            Logger.debug(f"Reveal button {selector} not clickable: {e}")
            return

        await self._wait_for_content(*COURSE_READY)
