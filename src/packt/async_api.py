import asyncio
import functools
from pathlib import Path

from playwright.async_api import Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from rich import print

from .cache import Cache
from .constants import (
    CONTENT_WAIT,
    NAVIGATION_TIMEOUT,
    PLAY_WAIT,
    SCROLL_TIME,
    SESSION_FILE,
    USER_AGENT,
)
from .downloader import DownloadOrchestrator, Fetch
from .exceptions import SessionError
from .extractor import CatalogExtractor
from .helpers import read_json, write_json
from .logger import Logger
from .models import Catalog, DownloadSummary, Playlist
from .progress_tracker import ProgressTracker
from .resolver import VideoResolver
from .session import SessionManager
from .utils import download


def session_required(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        self = args[0]
        if not isinstance(self, AsyncPackt):
            raise TypeError(f"{session_required.__name__} can only decorate AsyncPackt methods")
        if not self.loggedin:
            raise SessionError("Login first!")
        return await func(*args, **kwargs)

    return wrapper


class AsyncPackt:
    """
    Owns the browser and runs the pipeline against a single authenticated page.

    Usage
    -----
    >>> async with AsyncPackt(email, password) as packt:
    ...     await packt.login()
    ...     await packt.download(["12345"], output_dir=Path("Courses"))
    """

    def __init__(
        self,
        email: str = "",
        password: str = "",
        headless: bool = True,
        workers: int = 1,
        progress: bool = True,
        fetch: Fetch = download,
        content_wait: float = CONTENT_WAIT,
        scroll_time: float = SCROLL_TIME,
        play_wait: float = PLAY_WAIT,
    ):
        self.email = email
        self.password = password
        self.headless = headless
        self.workers = workers
        self.show_progress = progress
        self.fetch = fetch
        self.content_wait = content_wait
        self.scroll_time = scroll_time
        self.play_wait = play_wait

        self.loggedin = False
        self.progress = ProgressTracker()
        self._page: Page | None = None

    async def __aenter__(self):
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.firefox.launch(headless=self.headless)
        self._context = await self._browser.new_context(
            user_agent=USER_AGENT,
            viewport={"width": 1920, "height": 1080},
            locale="en-US",
        )
        self._context.set_default_timeout(NAVIGATION_TIMEOUT)

        await self._load_state()
        self.progress.start_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        print("\n")
        print(self.progress.generate_report())
        self.progress.save_final_report()

        await self._context.close()
        await self._browser.close()
        await self._playwright.stop()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SessionError("Login first!")
        return self._page

    async def login(self) -> None:
        session = SessionManager(
            open_page=self._context.new_page,
            email=self.email,
            password=self.password,
            headless=self.headless,
        )
        self._page = await session.login()
        self.loggedin = True
        await self._save_state()

    @staticmethod
    def logout() -> None:
        SESSION_FILE.unlink(missing_ok=True)
        Logger.info("Logged out successfully")

    async def _load_state(self) -> None:
        if not SESSION_FILE.exists():
            return
        try:
            await self._context.add_cookies(read_json(SESSION_FILE))
            Logger.debug(f"Loaded saved session from {SESSION_FILE}")
        except (ValueError, PlaywrightError) as e:
            Logger.warning(f"Ignoring saved session: {e}")

    async def _save_state(self) -> None:
        SESSION_FILE.parent.mkdir(parents=True, exist_ok=True)
        write_json(SESSION_FILE, await self._context.cookies())

    async def _auth_headers(self) -> dict[str, str]:
        cookies = await self._context.cookies()
        return {"Cookie": "; ".join(f"{c['name']}={c['value']}" for c in cookies)}

    async def _skeleton(self, playlist_id: str, refresh: bool) -> Playlist:
        extractor = CatalogExtractor(self.page, content_wait=self.content_wait, scroll_time=self.scroll_time)
        cached = None if refresh else Cache.load(playlist_id)
        if cached is not None:
            Logger.info(f"Using cached catalog for playlist {playlist_id} ({len(cached.courses)} courses)")
            playlist = await self._reextract_placeholders(cached, extractor)
        else:
            playlist = await extractor.extract_playlist(playlist_id)
            Cache.save(playlist)

        self.progress.record_issues(extractor.issues)
        self.progress.record_playlist(playlist)
        return playlist

    @staticmethod
    async def _reextract_placeholders(playlist: Playlist, extractor: CatalogExtractor) -> Playlist:
        """Courses that failed in an earlier run get one more extraction attempt."""
        broken = [index for index, course in enumerate(playlist.courses) if course.error]
        if not broken:
            return playlist

        Logger.info(f"Extracting {len(broken)} courses that failed in an earlier run again")
        for index in broken:
            course = await extractor.extract_course(playlist.courses[index].source_url)
            playlist = playlist.replace_course(index, course)
        Cache.save(playlist)
        return playlist

    async def _resolve(self, playlist: Playlist, index: int, retry_failed: bool) -> Playlist:
        resolver = VideoResolver(
            self.page,
            settle_wait=self.content_wait,
            play_wait=self.play_wait,
            progress=self.show_progress,
        )
        course = await resolver.resolve_course(playlist.courses[index], retry=retry_failed)
        self.progress.record_resolution(course)

        playlist = playlist.replace_course(index, course)
        Cache.save(playlist)
        return playlist

    @session_required
    async def crawl(self, playlist_id: str, refresh: bool = False, retry_failed: bool = False) -> Playlist:
        """Skeleton pass plus resolution, no downloads."""
        playlist = await self._skeleton(playlist_id, refresh)
        for index in range(len(playlist.courses)):
            playlist = await self._resolve(playlist, index, retry_failed)
        return playlist

    @session_required
    async def download(
        self,
        playlist_ids: list[str],
        output_dir: Path,
        refresh: bool = False,
        retry_failed: bool = False,
    ) -> DownloadSummary:
        """Each course is resolved and downloaded before the next one starts."""
        orchestrator = DownloadOrchestrator(
            output_dir,
            fetch=self.fetch,
            workers=self.workers,
            headers=await self._auth_headers(),
            progress=self.show_progress,
        )
        total = DownloadSummary()

        for playlist_id in playlist_ids:
            try:
                playlist = await self._skeleton(playlist_id, refresh)
            except (PlaywrightError, asyncio.TimeoutError) as e:
                Logger.error(f"Could not open playlist {playlist_id}: {e}", exception=e)
                continue

            for index in range(len(playlist.courses)):
                playlist = await self._resolve(playlist, index, retry_failed)
                course, summary = await orchestrator.build_course(playlist.courses[index])
                self.progress.record_download(course, summary)
                total = total + summary

                playlist = playlist.replace_course(index, course)
                Cache.save(playlist)

        return total


async def fetch_catalog(
    catalog: Catalog,
    output_dir: Path,
    workers: int = 1,
    fetch: Fetch = download,
    progress: bool = True,
) -> tuple[Catalog, DownloadSummary]:
    """Download an already resolved catalog without opening a browser."""
    orchestrator = DownloadOrchestrator(output_dir, fetch=fetch, workers=workers, progress=progress)
    total = DownloadSummary()

    for playlist in catalog.playlists:
        playlist, summaries = await orchestrator.build_and_download(playlist)
        catalog = catalog.with_playlist(playlist)
        for summary in summaries:
            total = total + summary

    return catalog, total


def load_catalog(path: Path) -> Catalog:
    return Catalog.model_validate(read_json(path))


def save_catalog(path: Path, catalog: Catalog) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    write_json(path, catalog.model_dump(mode="json"))
