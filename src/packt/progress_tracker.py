"""
Run statistics for the downloader.
Counts what each stage did and keeps the errors, for the final summary.
"""
from datetime import datetime
from pathlib import Path
from typing import Dict

from rich import box
from rich.table import Table

from .constants import REPORT_FILE
from .helpers import write_json
from .logger import Logger
from .models import Course, DownloadState, DownloadSummary, ExtractionIssue, Playlist


class ProgressTracker:
    """Tracks per-stage counters across one run."""

    def __init__(self):
        self.data: Dict = {
            "started_at": None,
            "finished_at": None,
            "playlists": {},
            "errors": [],
            "statistics": {
                "courses": 0,
                "placeholder_courses": 0,
                "videos": 0,
                "resolved": 0,
                "unresolved": 0,
                "downloaded": 0,
                "skipped": 0,
                "failed": 0,
            },
        }

    @property
    def stats(self) -> Dict:
        return self.data["statistics"]

    def start_session(self):
        self.data["started_at"] = datetime.now().isoformat()

    def record_playlist(self, playlist: Playlist):
        """Register the skeleton of a playlist."""
        self.data["playlists"][playlist.id] = {
            "title": playlist.title,
            "courses": len(playlist.courses),
        }
        self.stats["courses"] += len(playlist.courses)
        self.stats["videos"] += sum(course.total_video_count for course in playlist.courses)

        for course in playlist.courses:
            if course.error:
                self.stats["placeholder_courses"] += 1
                self._error("course", course.source_url, course.error)

    def record_issues(self, issues: list[ExtractionIssue]):
        for issue in issues:
            if issue.field != "course":
                self._error("field", issue.url, f"{issue.field}: {issue.reason}")

    def record_resolution(self, course: Course):
        for _, video in course.iter_videos():
            if video.download_state is DownloadState.FAILED:
                self.stats["unresolved"] += 1
                self._error("video", video.page_url, video.error or "unresolved")
            elif video.download_url:
                self.stats["resolved"] += 1

    def record_download(self, course: Course, summary: DownloadSummary):
        self.stats["downloaded"] += summary.downloaded
        self.stats["skipped"] += summary.skipped
        self.stats["failed"] += summary.failed
        Logger.debug(f"{course.title}: {summary.model_dump()}")

    def _error(self, kind: str, url: str, error: str):
        self.data["errors"].append(
            {
                "type": kind,
                "url": url,
                "error": error,
                "timestamp": datetime.now().isoformat(),
            }
        )

    def generate_report(self) -> Table:
        """Summary table of the run."""
        table = Table(title="Download Report", box=box.ROUNDED, show_header=True)
        table.add_column("Stage", style="bold")
        table.add_column("Metric")
        table.add_column("Count", justify="right")

        rows = [
            ("Extraction", "Courses", "courses"),
            ("", "Placeholder courses", "placeholder_courses"),
            ("", "Videos", "videos"),
            ("Resolution", "Resolved", "resolved"),
            ("", "Unresolved", "unresolved"),
            ("Download", "Downloaded", "downloaded"),
            ("", "Skipped", "skipped"),
            ("", "Failed", "failed"),
        ]
        for stage, metric, key in rows:
            value = self.stats[key]
            style = "red" if key in ("placeholder_courses", "unresolved", "failed") and value else None
            table.add_row(stage, metric, str(value), style=style)

        if self.data["errors"]:
            table.caption = f"{len(self.data['errors'])} errors, see {REPORT_FILE}"
        return table

    def save_final_report(self, path: Path = REPORT_FILE):
        """Save the final report as JSON."""
        self.data["finished_at"] = datetime.now().isoformat()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            write_json(path, self.data)
            Logger.info(f"Final report saved to {path}")
        except OSError as e:
            Logger.error(f"Could not save report: {e}", exception=e)
