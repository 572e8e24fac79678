from enum import Enum
from typing import Iterator
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .exceptions import InvalidTransition


class DownloadState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DownloadState.DOWNLOADED, DownloadState.SKIPPED, DownloadState.FAILED)


# forward-only: anything not listed here is rejected
TRANSITIONS: dict[DownloadState, set[DownloadState]] = {
    DownloadState.PENDING: {DownloadState.RESOLVED, DownloadState.FAILED, DownloadState.SKIPPED},
    DownloadState.RESOLVED: {DownloadState.DOWNLOADED, DownloadState.FAILED, DownloadState.SKIPPED},
}


class SourceKind(str, Enum):
    MP4 = "mp4"
    HLS = "hls"
    DASH = "dash"
    UNKNOWN = "unknown"

    @classmethod
    def from_url(cls, url: str) -> "SourceKind":
        path = urlparse(url).path.lower()
        if path.endswith(".m3u8") or ".m3u8" in path or "/hls/" in path:
            return cls.HLS
        if ".mpd" in path or "/dash/" in path:
            return cls.DASH
        if ".mp4" in path or ".mp4" in url.lower():
            return cls.MP4
        return cls.UNKNOWN

    @property
    def is_streaming(self) -> bool:
        """HLS and DASH need a segment-aware client, plain file transfer can't fetch them."""
        return self in (SourceKind.HLS, SourceKind.DASH)


class MediaCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    kind: SourceKind
    origin: str


class Video(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    order: int = Field(ge=1)
    page_url: str
    download_url: str | None = None
    download_state: DownloadState = DownloadState.PENDING
    source_kind: SourceKind | None = None
    source_strategy: str | None = None
    error: str | None = None

    def transition(self, state: DownloadState, **changes) -> "Video":
        """Return a copy moved to ``state``; raises InvalidTransition on any backward or terminal move."""
        if state not in TRANSITIONS.get(self.download_state, set()):
            raise InvalidTransition(
                f"'{self.title}': {self.download_state.value} -> {state.value} is not allowed"
            )
        return self.model_copy(update={"download_state": state, **changes})

    def resolve(self, candidate: MediaCandidate) -> "Video":
        if self.download_url is not None:
            raise InvalidTransition(f"'{self.title}' is already resolved to {self.download_url}")
        return self.transition(
            DownloadState.RESOLVED,
            download_url=candidate.url,
            source_kind=candidate.kind,
            source_strategy=candidate.origin,
        )

    def fail(self, reason: str) -> "Video":
        return self.transition(DownloadState.FAILED, error=reason)

    def reset_for_retry(self) -> "Video":
        """Explicit retry: a fresh Pending value for a Failed or Resolved video."""
        if self.download_state not in (DownloadState.FAILED, DownloadState.RESOLVED):
            raise InvalidTransition(
                f"'{self.title}' can't be retried from {self.download_state.value}"
            )
        return Video(title=self.title, order=self.order, page_url=self.page_url)


class Chapter(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    order: int = Field(ge=1)
    videos: tuple[Video, ...] = ()

    def with_videos(self, videos) -> "Chapter":
        return self.model_copy(update={"videos": tuple(videos)})


class Course(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    author: str = "Unknown Author"
    description: str = ""
    source_url: str
    chapters: tuple[Chapter, ...] = ()
    error: str | None = None

    @computed_field
    @property
    def total_video_count(self) -> int:
        return sum(len(chapter.videos) for chapter in self.chapters)

    def with_chapters(self, chapters) -> "Course":
        return self.model_copy(update={"chapters": tuple(chapters)})

    def iter_videos(self) -> Iterator[tuple[Chapter, Video]]:
        for chapter in self.chapters:
            for video in chapter.videos:
                yield chapter, video

    @classmethod
    def placeholder(cls, url: str, error: str) -> "Course":
        return cls(
            title="Unknown Course",
            author="Unknown Author",
            description=f"Error extracting course details: {error}",
            source_url=url,
            error=error,
        )


class Playlist(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    url: str
    courses: tuple[Course, ...] = ()

    def with_courses(self, courses) -> "Playlist":
        return self.model_copy(update={"courses": tuple(courses)})

    def replace_course(self, index: int, course: Course) -> "Playlist":
        courses = list(self.courses)
        courses[index] = course
        return self.with_courses(courses)


class Catalog(BaseModel):
    model_config = ConfigDict(frozen=True)

    playlists: tuple[Playlist, ...] = ()

    def with_playlist(self, playlist: Playlist) -> "Catalog":
        if any(p.id == playlist.id for p in self.playlists):
            playlists = tuple(playlist if p.id == playlist.id else p for p in self.playlists)
        else:
            playlists = (*self.playlists, playlist)
        return self.model_copy(update={"playlists": playlists})


class DownloadSummary(BaseModel):
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, state: DownloadState) -> None:
        if state is DownloadState.DOWNLOADED:
            self.downloaded += 1
        elif state is DownloadState.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def __add__(self, other: "DownloadSummary") -> "DownloadSummary":
        return DownloadSummary(
            downloaded=self.downloaded + other.downloaded,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
        )

    @property
    def total(self) -> int:
        return self.downloaded + self.skipped + self.failed


class ExtractionIssue(BaseModel):
    url: str
    field: str
    reason: str
