import asyncio
import re
from pathlib import Path

import aiofiles
import rnet
from playwright.async_api import Page
from unidecode import unidecode

from .exceptions import DownloadFailed
from .helpers import retry

FORBIDDEN_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
LEADING_ORDINAL = re.compile(r"^\s*\d+(?:\.\d+)*(?=[\s.):\-–]|$)[\s.):\-–]*")


def safe_path(path: Path, limit: int = 240) -> Path:
    """Shorten the file name so the absolute path fits in ``limit`` characters (Windows MAX_PATH)."""
    overflow = len(str(path.resolve())) - limit
    if overflow <= 0:
        return path

    keep = len(path.stem) - overflow - 3
    stem = f"{path.stem[:keep]}..." if keep > 0 else "file"
    return path.with_name(f"{stem}{path.suffix}")


async def progressive_scroll(page: Page, time: float = 3, delay: float = 0.1, steps: int = 250):
    """Wheel down the page for ``time`` seconds so lazily rendered lists get populated."""
    total_time = 0.0
    while total_time < time:
        await asyncio.sleep(delay)
        await page.mouse.wheel(0, steps)
        total_time += delay


def sanitize(text: str, max_length: int = 100) -> str:
    """
    Make a title safe to use as a file or directory name.

    Forbidden path characters are dropped, whitespace is collapsed and the
    result is truncated. Applying it twice gives the same result.

    Example
    -------
    >>> sanitize('Intro: "What is <Python>?"')
    'Intro What is Python'
    """
    result = re.sub(r"\s+", " ", text)
    result = FORBIDDEN_CHARS.sub("", result)
    result = re.sub(r" {2,}", " ", result).strip()
    result = result[:max_length].rstrip(" .")
    return result or "untitled"


def strip_ordinal(title: str) -> str:
    """
    Remove a numeric prefix the source already put on a title.

    Example
    -------
    >>> strip_ordinal("3. Intro")
    'Intro'
    >>> strip_ordinal("3D Modeling")
    '3D Modeling'
    """
    stripped = LEADING_ORDINAL.sub("", title, count=1).strip()
    return stripped or title.strip()


def ordinal_name(position: int, title: str, max_length: int = 80) -> str:
    """Name an entity by its 1-based position: ``ordinal_name(1, "3. Intro") == "01 Intro"``."""
    return f"{position:02d} {strip_ordinal(sanitize(title, max_length=max_length))}"


def slugify(text: str) -> str:
    """
    Slugify a string, removing special characters and replacing
    spaces with hyphens.

    Example
    -------
    >>> slugify("Café! Frío?")
    'cafe-frio'
    """
    cleaned = re.sub(r"[^\w\s-]", "", unidecode(text))
    return re.sub(r"[\s_-]+", "-", cleaned).strip("-").lower() or "untitled"


@retry(attempts=3, delay=1)
async def download(url: str, path: Path, **kwargs) -> None:
    """Stream ``url`` into ``path``. Raises DownloadFailed on a bad response."""
    headers = kwargs.get("headers")

    path.parent.mkdir(parents=True, exist_ok=True)

    client = rnet.Client(impersonate=rnet.Impersonate.Firefox139)
    response: rnet.Response = await client.get(url, allow_redirects=True, headers=headers)

    try:
        if not response.ok:
            raise DownloadFailed(f"[Bad Response: {response.status}] {url}")

        async with aiofiles.open(path, "wb") as file:
            async with response.stream() as streamer:
                async for chunk in streamer:
                    await file.write(chunk)
    finally:
        await response.close()
