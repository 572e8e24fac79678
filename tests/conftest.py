import asyncio
from collections import defaultdict
from pathlib import Path

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class FakeRequest:
    def __init__(self, url: str):
        self.url = url


class FakeMouse:
    def __init__(self):
        self.scrolled = 0

    async def wheel(self, delta_x, delta_y):
        self.scrolled += delta_y


class FakePage:
    """
    In-memory stand-in for a Playwright page.

    routes:   url -> markup served by ``goto``
    requests: url -> network request urls emitted while ``goto`` loads it
    clicks:   selector -> new markup, or a callable taking the page
    script:   markups returned by successive ``content`` calls
    """

    def __init__(self, routes=None, requests=None, clicks=None):
        self.routes = dict(routes or {})
        self.requests = dict(requests or {})
        self.clicks = dict(clicks or {})
        self.script: list[str] = []

        self.url = "about:blank"
        self.markup = ""
        self.visited: list[str] = []
        self.filled: dict[str, str] = {}
        self.clicked: list[str] = []
        self.evaluated: list[str] = []
        self.closed = False
        self.listeners = defaultdict(list)
        self.mouse = FakeMouse()

    async def goto(self, url, **kwargs):
        self.visited.append(url)
        if url not in self.routes:
            raise PlaywrightError(f"net::ERR_CONNECTION_RESET at {url}")
        self.url = url
        self.markup = self.routes[url]
        for request_url in self.requests.get(url, []):
            for listener in list(self.listeners["request"]):
                listener(FakeRequest(request_url))

    async def content(self):
        if self.script:
            self.markup = self.script.pop(0)
        return self.markup

    async def wait_for_selector(self, selector, timeout=None, **kwargs):
        if BeautifulSoup(self.markup, "html.parser").select_one(selector) is None:
            await asyncio.sleep((timeout or 0) / 1000)
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return True

    async def wait_for_load_state(self, state="load", **kwargs):
        return None

    async def fill(self, selector, value, **kwargs):
        self.filled[selector] = value

    async def click(self, selector, **kwargs):
        self.clicked.append(selector)
        action = self.clicks.get(selector)
        if callable(action):
            action(self)
        elif action is not None:
            self.markup = action

    async def evaluate(self, expression, arg=None):
        self.evaluated.append(expression)
        return None

    def on(self, event, handler):
        self.listeners[event].append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True


class FakeFetch:
    """Records calls and writes a few bytes, or raises for urls in ``failing``."""

    def __init__(self, failing=()):
        self.calls: list[tuple[str, Path, dict]] = []
        self.failing = set(failing)

    async def __call__(self, url, path: Path, headers=None):
        self.calls.append((url, path, headers or {}))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"partial")
        if url in self.failing:
            raise ConnectionError(f"stream reset while reading {url}")
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")


@pytest.fixture
def fake_page():
    return FakePage


@pytest.fixture
def fake_fetch():
    return FakeFetch()
