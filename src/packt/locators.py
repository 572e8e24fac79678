"""
Selector resolution engine.

Page structure drifts, so every piece of content we look for (a semantic
``Target``) has an ordered list of strategies, most specific first. Each
strategy is a plain function over a ``Scope`` (a parsed snapshot of the
rendered page) that returns a value or ``None``. The engine runs them in
order and the first non-empty value wins.

Strategies never navigate or wait: the page is loaded before a ``Scope`` is
taken, and every scan is bounded by ``MAX_SCAN_CHARS`` / ``MAX_SCAN_ELEMENTS``.
"""

import re
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any, Callable, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from playwright.async_api import Page

from .constants import MAX_SCAN_CHARS, MAX_SCAN_ELEMENTS
from .logger import Logger


class Target(str, Enum):
    LOGIN_EMAIL = "login email field"
    LOGIN_PASSWORD = "login password field"
    LOGIN_SUBMIT = "login submit button"
    LOGIN_ERROR = "login error alert"
    CHALLENGE = "challenge marker"
    POST_LOGIN = "post-login marker"
    PLAYLIST_TITLE = "playlist title"
    COURSE_LINKS = "course links"
    REVEAL_BUTTON = "reveal content button"
    COURSE_TITLE = "course title"
    COURSE_AUTHOR = "course author"
    COURSE_DESCRIPTION = "course description"
    CHAPTERS = "chapter list"
    PLAY_CONTROL = "play control"
    VIDEO_SOURCE = "video source"


class Scope:
    """Read-only view over already rendered markup."""

    def __init__(
        self,
        markup: str,
        base_url: str = "",
        network_urls: Sequence[str] = (),
        max_chars: int = MAX_SCAN_CHARS,
        max_elements: int = MAX_SCAN_ELEMENTS,
    ):
        self.markup = markup[:max_chars]
        self.base_url = base_url
        self.network_urls = tuple(network_urls)
        self.max_elements = max_elements

    @classmethod
    async def from_page(cls, page: Page, network_urls: Sequence[str] = ()) -> "Scope":
        return cls(await page.content(), base_url=page.url, network_urls=network_urls)

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.markup, "html.parser")

    def select(self, selector: str, root: Tag | None = None) -> list[Tag]:
        return (self.soup if root is None else root).select(selector, limit=self.max_elements)

    def select_one(self, selector: str, root: Tag | None = None) -> Tag | None:
        return (self.soup if root is None else root).select_one(selector)

    def has(self, selector: str) -> bool:
        return self.select_one(selector) is not None

    def absolute(self, href: str) -> str:
        return urljoin(self.base_url, href)

    @staticmethod
    def text(element: Tag | None) -> str:
        if element is None:
            return ""
        return re.sub(r"\s+", " ", element.get_text(" ")).strip()


Strategy = Callable[[Scope], Any]


@dataclass(frozen=True)
class Extraction:
    target: Target
    strategy: str
    tier: int
    value: Any


class SelectorEngine:
    def __init__(self):
        self._strategies: dict[Target, list[tuple[str, Strategy]]] = defaultdict(list)

    def register(self, target: Target, name: str | None = None):
        """Decorator appending a strategy to ``target``; registration order is priority order."""

        def decorator(func: Strategy) -> Strategy:
            self._strategies[target].append((name or func.__name__, func))
            return func

        return decorator

    def resolve(self, target: Target, scope: Scope) -> Extraction | None:
        for tier, (name, strategy) in enumerate(self._strategies[target], 1):
            try:
                value = strategy(scope)
            except Exception as e:
                Logger.debug(f"{target.value}: strategy '{name}' raised {type(e).__name__}: {e}")
                continue

            if value:
                Logger.debug(f"{target.value}: resolved by '{name}' (tier {tier})")
                return Extraction(target=target, strategy=name, tier=tier, value=value)

        Logger.debug(f"{target.value}: not found")
        return None

    def value(self, target: Target, scope: Scope, default=None):
        found = self.resolve(target, scope)
        return found.value if found else default
