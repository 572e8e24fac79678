import os
import sys
from pathlib import Path

import typer
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ConfigMissing

ENV_EMAIL = "PACKT_EMAIL"
ENV_PASSWORD = "PACKT_PASSWORD"
ENV_PLAYLIST_IDS = "PACKT_PLAYLIST_IDS"
ENV_OUTPUT_DIRECTORY = "OUTPUT_DIRECTORY"
ENV_WATCH = "WATCH"

TRUTHY = ("1", "true", "yes", "on")
DEFAULT_OUTPUT = "Courses"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    password: str = Field(repr=False)
    playlist_ids: tuple[str, ...] = Field(min_length=1)
    output_dir: Path
    show_browser: bool = False
    workers: int = Field(default=1, ge=1)
    refresh: bool = False
    retry_failed: bool = False


def split_ids(value: str | None) -> tuple[str, ...]:
    """``"a, b,,c"`` -> ``("a", "b", "c")``"""
    if not value:
        return ()
    return tuple(dict.fromkeys(part.strip() for part in value.split(",") if part.strip()))


def _pick(flag: str | None, env: str, label: str, interactive: bool, hide_input: bool = False) -> str:
    """CLI flag, then environment variable, then a prompt when a terminal is attached."""
    value = flag or os.environ.get(env)
    if value:
        return value
    if not interactive:
        raise ConfigMissing(f"{label} (use a flag or set {env})")

    value = typer.prompt(label, hide_input=hide_input).strip()
    if not value:
        raise ConfigMissing(label)
    return value


def resolve_settings(
    email: str | None = None,
    password: str | None = None,
    playlist_ids: str | None = None,
    directory: str | None = None,
    show_browser: bool = False,
    workers: int = 1,
    refresh: bool = False,
    retry_failed: bool = False,
    interactive: bool | None = None,
    require_credentials: bool = True,
) -> Settings:
    if interactive is None:
        interactive = sys.stdin.isatty()

    if require_credentials:
        email = _pick(email, ENV_EMAIL, "Email", interactive)
        password = _pick(password, ENV_PASSWORD, "Password", interactive, hide_input=True)

    ids = split_ids(_pick(playlist_ids, ENV_PLAYLIST_IDS, "Playlist IDs (comma separated)", interactive))
    if not ids:
        raise ConfigMissing("Playlist IDs")

    output_dir = directory or os.environ.get(ENV_OUTPUT_DIRECTORY)
    if not output_dir:
        output_dir = typer.prompt("Output directory", default=DEFAULT_OUTPUT) if interactive else DEFAULT_OUTPUT

    show_browser = show_browser or os.environ.get(ENV_WATCH, "").strip().lower() in TRUTHY

    return Settings(
        email=email or "",
        password=password or "",
        playlist_ids=ids,
        output_dir=Path(output_dir).expanduser(),
        show_browser=show_browser,
        workers=workers,
        refresh=refresh,
        retry_failed=retry_failed,
    )
