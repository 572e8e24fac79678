"""
Login state machine.

    UNAUTHENTICATED -> SUBMITTING -> AUTHENTICATED
                                  -> CHALLENGE_PENDING -> AUTHENTICATED | FAILED
                                  -> FAILED

Transient driver errors restart the whole flow on a fresh page, at most
``max_retries`` times. A challenge is never solved here, only waited for.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .collectors import ENGINE
from .constants import (
    CHALLENGE_POLL_INTERVAL,
    CHALLENGE_TIMEOUT,
    LOGIN_MARKER_TIMEOUT,
    LOGIN_URL,
    MAX_RETRIES,
    NAVIGATION_TIMEOUT,
    RETRY_DELAY,
    SELECTOR_TIMEOUT,
)
from .exceptions import ChallengeTimeout, LoginFailed, SessionError
from .helpers import backoff_delay
from .locators import Scope, SelectorEngine, Target
from .logger import Logger

# login form or an already signed-in header, whichever renders first
LOGIN_READY = (
    "#inline-form-input-username, #login-input-email, input[type='password'], "
    "[data-testid='avatar-button-desktop'], a[href*='logout']"
)
ANNOUNCE_EVERY = 15.0  # seconds


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    SUBMITTING = "submitting"
    CHALLENGE_PENDING = "challenge pending"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class LoginFormMissing(Exception):
    """The login page rendered without a usable form; treated as transient."""


TRANSIENT_ERRORS = (PlaywrightError, asyncio.TimeoutError, LoginFormMissing)


class SessionManager:
    def __init__(
        self,
        open_page: Callable[[], Awaitable[Page]],
        email: str,
        password: str,
        engine: SelectorEngine = ENGINE,
        login_url: str = LOGIN_URL,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        poll_interval: float = CHALLENGE_POLL_INTERVAL,
        challenge_timeout: float = CHALLENGE_TIMEOUT,
        marker_timeout: float = LOGIN_MARKER_TIMEOUT,
        ready_timeout: float = SELECTOR_TIMEOUT,
        headless: bool = True,
    ):
        self.open_page = open_page
        self.email = email
        self.password = password
        self.engine = engine
        self.login_url = login_url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.poll_interval = poll_interval
        self.challenge_timeout = challenge_timeout
        self.marker_timeout = marker_timeout
        self.ready_timeout = ready_timeout
        self.headless = headless

        self.state = SessionState.UNAUTHENTICATED
        self.page: Page | None = None

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    async def login(self) -> Page:
        """Return the authenticated page, raising a ``SessionError`` otherwise."""
        if self.authenticated and self.page is not None and not self.page.is_closed():
            return self.page

        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            page = None
            try:
                page = await self.open_page()
                await self._attempt(page)
            except TRANSIENT_ERRORS as e:
                last_error = e
                if page is not None:
                    await self._close(page)
                Logger.warning(f"Login attempt {attempt}/{self.max_retries} failed: {e}")
                if attempt < self.max_retries:
                    await asyncio.sleep(backoff_delay(attempt, self.retry_delay))
                continue
            except SessionError:
                self.state = SessionState.FAILED
                await self._close(page)
                raise

            self.page = page
            return page

        self.state = SessionState.FAILED
        raise LoginFailed(f"gave up after {self.max_retries} attempts ({last_error})")

    async def _attempt(self, page: Page) -> None:
        self.state = SessionState.UNAUTHENTICATED
        await page.goto(self.login_url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT)
        try:
            await page.wait_for_selector(LOGIN_READY, timeout=self.ready_timeout)
        except PlaywrightTimeoutError:
            Logger.debug("Login page did not render a known element in time")

        scope = await Scope.from_page(page)
        email_field = self.engine.value(Target.LOGIN_EMAIL, scope)

        if email_field is None and self.engine.resolve(Target.POST_LOGIN, scope):
            self.state = SessionState.AUTHENTICATED
            Logger.info("Reusing saved session")
            return

        password_field = self.engine.value(Target.LOGIN_PASSWORD, scope)
        submit = self.engine.value(Target.LOGIN_SUBMIT, scope)
        if not (email_field and password_field and submit):
            raise LoginFormMissing("login form not found")

        self.state = SessionState.SUBMITTING
        await page.fill(email_field, self.email)
        await page.fill(password_field, self.password)
        await page.click(submit)
        await self._await_outcome(page)

    async def _await_outcome(self, page: Page) -> None:
        polls = max(1, round(self.marker_timeout / self.poll_interval))
        for _ in range(polls):
            await asyncio.sleep(self.poll_interval)
            scope = await Scope.from_page(page)

            error = self.engine.value(Target.LOGIN_ERROR, scope)
            if error:
                raise LoginFailed(error)
            if self.engine.resolve(Target.POST_LOGIN, scope):
                self.state = SessionState.AUTHENTICATED
                Logger.info("Logged in successfully")
                return
            if self.engine.resolve(Target.CHALLENGE, scope):
                await self._await_challenge(page)
                return

        raise LoginFailed("post-login marker not found")

    async def _await_challenge(self, page: Page) -> None:
        self.state = SessionState.CHALLENGE_PENDING
        Logger.warning("Verification challenge detected, complete it in the browser window")
        if self.headless:
            Logger.warning("The browser is headless, rerun with --show-browser to solve it")

        polls = max(1, round(self.challenge_timeout / self.poll_interval))
        announce = max(1, round(ANNOUNCE_EVERY / self.poll_interval))

        for poll in range(1, polls + 1):
            await asyncio.sleep(self.poll_interval)
            scope = await Scope.from_page(page)

            error = self.engine.value(Target.LOGIN_ERROR, scope)
            if error:
                raise LoginFailed(error)
            if self.engine.resolve(Target.POST_LOGIN, scope):
                self.state = SessionState.AUTHENTICATED
                Logger.info("Challenge cleared, logged in successfully")
                return
            if poll % announce == 0:
                remaining = (polls - poll) * self.poll_interval
                Logger.info(f"Waiting for the challenge, {remaining:.0f}s left")

        raise ChallengeTimeout(polls * self.poll_interval)

    @staticmethod
    async def _close(page: Page) -> None:
        if page.is_closed():
            return
        try:
            await page.close()
        except PlaywrightError as e:
            Logger.debug(f"Could not close page: {e}")
