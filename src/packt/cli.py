import asyncio
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import print
from typing_extensions import Annotated

from packt import AsyncPackt, Cache
from packt.async_api import fetch_catalog, load_catalog, save_catalog
from packt.config import Settings, resolve_settings
from packt.exceptions import ConfigMissing, SessionError
from packt.logger import Logger
from packt.models import Catalog, DownloadSummary

app = typer.Typer(rich_markup_mode="rich")

EmailOption = Annotated[
    Optional[str],
    typer.Option("--email", "-e", help="Packt account email [env: PACKT_EMAIL].", show_default=False),
]
PasswordOption = Annotated[
    Optional[str],
    typer.Option("--password", "-p", help="Packt account password [env: PACKT_PASSWORD].", show_default=False),
]
PlaylistOption = Annotated[
    Optional[str],
    typer.Option(
        "--ids",
        "-i",
        help="Comma separated playlist IDs [env: PACKT_PLAYLIST_IDS].",
        show_default=False,
    ),
]
ShowBrowserOption = Annotated[
    bool,
    typer.Option("--show-browser/--headless", help="Show the browser window [env: WATCH].", show_default=False),
]
RefreshOption = Annotated[
    bool,
    typer.Option("--refresh", help="Ignore the cached catalog and crawl again."),
]
RetryOption = Annotated[
    bool,
    typer.Option("--retry-failed", help="Resolve videos that failed in a previous run again."),
]
DebugOption = Annotated[
    bool,
    typer.Option("--debug", help="Verbose logging with tracebacks."),
]


def _settings(**kwargs) -> Settings:
    try:
        return resolve_settings(**kwargs)
    except ConfigMissing as e:
        Logger.error(str(e))
        raise typer.Exit(code=1)


def _print_summary(summary: DownloadSummary) -> None:
    print("\n" + "=" * 100)
    print(
        f"[bold]Downloaded:[/bold] [green]{summary.downloaded}[/green]  "
        f"[bold]Skipped:[/bold] [yellow]{summary.skipped}[/yellow]  "
        f"[bold]Errors:[/bold] [red]{summary.failed}[/red]"
    )
    print("=" * 100)


@app.command()
def download(
    email: EmailOption = None,
    password: PasswordOption = None,
    ids: PlaylistOption = None,
    directory: Annotated[
        Optional[str],
        typer.Option("--directory", "-d", help="Output directory [env: OUTPUT_DIRECTORY].", show_default=False),
    ] = None,
    show_browser: ShowBrowserOption = False,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", min=1, help="Concurrent file downloads per course.", show_default=True),
    ] = 1,
    refresh: RefreshOption = False,
    retry_failed: RetryOption = False,
    debug: DebugOption = False,
):
    """
    Log in, crawl the playlists and download every course video.

    Usage:
        packt download -e me@example.com -i 12345,67890 -d ~/Videos/Packt
        packt download --show-browser          # solve a login challenge by hand
    """
    Logger.set_debug_mode(debug)
    settings = _settings(
        email=email,
        password=password,
        playlist_ids=ids,
        directory=directory,
        show_browser=show_browser,
        workers=workers,
        refresh=refresh,
        retry_failed=retry_failed,
    )
    _run(_download(settings))


@app.command()
def crawl(
    email: EmailOption = None,
    password: PasswordOption = None,
    ids: PlaylistOption = None,
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Where to write the resolved catalog.", show_default=True),
    ] = Path("catalog.json"),
    show_browser: ShowBrowserOption = False,
    refresh: RefreshOption = False,
    retry_failed: RetryOption = False,
    debug: DebugOption = False,
):
    """
    Log in and resolve every video of the playlists into a catalog file, without downloading.

    Usage:
        packt crawl -i 12345 -o catalog.json
    """
    Logger.set_debug_mode(debug)
    settings = _settings(
        email=email,
        password=password,
        playlist_ids=ids,
        directory=".",
        show_browser=show_browser,
        refresh=refresh,
        retry_failed=retry_failed,
    )
    _run(_crawl(settings, output))


@app.command()
def fetch(
    catalog: Annotated[
        Path,
        typer.Argument(help="Catalog file written by 'packt crawl'.", exists=True, dir_okay=False),
    ],
    directory: Annotated[
        Path,
        typer.Option("--directory", "-d", help="Output directory.", show_default=True),
    ] = Path("Courses"),
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", min=1, help="Concurrent file downloads per course.", show_default=True),
    ] = 1,
    debug: DebugOption = False,
):
    """
    Download the videos of a resolved catalog file. No browser is opened.

    Usage:
        packt fetch catalog.json -d Courses
    """
    Logger.set_debug_mode(debug)
    try:
        loaded = load_catalog(catalog)
    except ValueError as e:
        Logger.error(f"Invalid catalog file {catalog}: {e}")
        raise typer.Exit(code=1)

    updated, summary = asyncio.run(fetch_catalog(loaded, directory.expanduser(), workers=workers))
    save_catalog(catalog, updated)
    _print_summary(summary)


@app.command()
def logout():
    """
    Delete the saved Packt session.

    Usage:
        packt logout
    """
    AsyncPackt.logout()


@app.command()
def clear_cache():
    """
    Delete the cached playlist catalogs.

    Usage:
        packt clear-cache
    """
    Cache.clear()
    print("[green]Cache cleared successfully[/green]")


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except SessionError as e:
        Logger.error(str(e), exception=e)
        raise typer.Exit(code=1)


async def _download(settings: Settings):
    async with AsyncPackt(
        settings.email,
        settings.password,
        headless=not settings.show_browser,
        workers=settings.workers,
    ) as packt:
        await packt.login()
        summary = await packt.download(
            list(settings.playlist_ids),
            settings.output_dir,
            refresh=settings.refresh,
            retry_failed=settings.retry_failed,
        )
    _print_summary(summary)


async def _crawl(settings: Settings, output: Path):
    catalog = Catalog()
    async with AsyncPackt(settings.email, settings.password, headless=not settings.show_browser) as packt:
        await packt.login()
        for playlist_id in settings.playlist_ids:
            catalog = catalog.with_playlist(
                await packt.crawl(playlist_id, refresh=settings.refresh, retry_failed=settings.retry_failed)
            )
    save_catalog(output, catalog)
    Logger.info(f"Catalog with {len(catalog.playlists)} playlists saved to {output}")


def main():
    load_dotenv()
    app()
