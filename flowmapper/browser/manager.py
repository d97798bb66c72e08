"""
Playwright Browser Manager.
Manages browser lifecycle and serves as perception source and action target for a session.
"""

import asyncio
import logging

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from ..core.config import settings
from ..core.errors import PerceptionFailure
from ..core.interfaces import ActionTarget, PerceptionSource
from ..core.models import Action, ActionKind, ApplyResult, Observation
from ..utils.hashing import compute_fingerprint
from .dom import extract_snapshot


logger = logging.getLogger(__name__)


class BrowserManager(PerceptionSource, ActionTarget):
    """
    Manages one Playwright browser for one exploration session.
    Observes pages as canonical snapshots and applies atomic actions.
    """

    VIEWPORT = {"width": 1200, "height": 675}

    def __init__(self, headless: bool | None = None, ignore_selectors: list[str] | None = None):
        """
        Initialize browser manager.

        Args:
            headless: Run in headless mode (defaults to config)
            ignore_selectors: Regions left out of every snapshot (defaults to config)
        """
        self.headless = headless if headless is not None else settings.headless
        self.ignore_selectors = list(
            settings.ignore_selectors if ignore_selectors is None else ignore_selectors
        )

        self.playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.page: Page | None = None

        self._start_lock = asyncio.Lock()
        self._closed = False

    async def start(self) -> Page:
        """
        Start browser and return page.

        Returns:
            Playwright Page object
        """
        async with self._start_lock:
            if self._closed:
                raise RuntimeError("Browser already closed")
            if self.page:
                return self.page

            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(headless=self.headless)
            self.context = await self.browser.new_context(viewport=self.VIEWPORT)
            self.page = await self.context.new_page()
            self.page.set_default_timeout(settings.browser_timeout)
            logger.info(f"[browser] Started (headless={self.headless})")
            return self.page

    async def close(self) -> None:
        """Stop browser and cleanup. Safe to call more than once."""
        self._closed = True

        if self.page:
            page, self.page = self.page, None
            await self._quietly(page.close())

        if self.context:
            context, self.context = self.context, None
            await self._quietly(context.close())

        if self.browser:
            browser, self.browser = self.browser, None
            await self._quietly(browser.close())

        if self.playwright:
            playwright, self.playwright = self.playwright, None
            await self._quietly(playwright.stop())

    async def _quietly(self, awaitable) -> None:
        try:
            await awaitable
        except PlaywrightError as e:
            logger.debug(f"[browser] Ignoring error during close: {e}")

    # =========================================================================
    # Perception
    # =========================================================================

    async def observe(self, locator: str | None = None) -> Observation:
        """
        Capture the current page, navigating to ``locator`` first when given.

        Args:
            locator: URL to load, or None to observe the current page

        Returns:
            Observation with snapshot, final URL and fingerprint
        """
        try:
            page = await self.start()
            if locator:
                await page.goto(locator, wait_until="networkidle", timeout=settings.browser_timeout)
            snapshot = await extract_snapshot(page, self.ignore_selectors)
        except (PlaywrightError, RuntimeError) as e:
            target = locator or "current page"
            if "ERR_CONNECTION_REFUSED" in str(e):
                raise PerceptionFailure(f"Connection refused: unable to reach {target}") from e
            raise PerceptionFailure(f"Could not observe {target}: {e}") from e

        return Observation(
            snapshot=snapshot,
            locator=page.url,
            fingerprint=compute_fingerprint(snapshot),
        )

    # =========================================================================
    # Actions
    # =========================================================================

    async def apply(self, action: Action) -> ApplyResult:
        """
        Apply one action to the page.

        Args:
            action: Action with an already sanitized target

        Returns:
            ApplyResult with the Playwright error message on failure
        """
        if not self.page:
            return ApplyResult(success=False, reason="Browser not started")

        try:
            if action.kind == ActionKind.ACTIVATE:
                await self.page.click(action.target)
            elif action.kind == ActionKind.ENTER_TEXT:
                await self.page.fill(action.target, action.text)
            elif action.kind == ActionKind.CHOOSE_OPTION:
                await self.page.select_option(action.target, action.value)
            elif action.kind == ActionKind.NAVIGATE:
                await self.page.goto(action.url, wait_until="networkidle", timeout=settings.browser_timeout)
            else:
                return ApplyResult(success=False, reason=f"Unsupported action kind: {action.kind}")
        except PlaywrightError as e:
            # First line only, Playwright appends a long call log
            return ApplyResult(success=False, reason=str(e).splitlines()[0] if str(e) else type(e).__name__)

        return ApplyResult(success=True)

    async def settle(self) -> None:
        """Wait for network idle after a batch."""
        if not self.page:
            return
        try:
            await self.page.wait_for_load_state("networkidle", timeout=settings.network_idle_timeout)
        except PlaywrightTimeoutError:
            logger.warning("[browser] Network did not go idle before timeout, continuing")
        except PlaywrightError as e:
            logger.warning(f"[browser] Settle failed: {e}")
