"""
Browser Session

Owns exactly one Playwright browser process and one page. Every call blocks
until the browser has answered, so callers never interleave page operations.
"""

import logging
from typing import Any, Callable, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..errors import LaunchError, NavigationError

logger = logging.getLogger(__name__)

_MISSING_BROWSER_MARKERS = (
    "Executable doesn't exist",
    "No browsers found",
    "browser executable path",
    "Failed to find",
    "not installed",
    "playwright install",
)

DETECT_REACT_SCRIPT = """
() => {
    const hasReactFiber = (element) => Object.keys(element).some(
        (key) => key.startsWith('__reactFiber') ||
            key.startsWith('__reactProps') ||
            key.startsWith('__reactInternalInstance')
    );
    const hook = window.__REACT_DEVTOOLS_GLOBAL_HOOK__;
    if (hook && hook.getFiberRoots) {
        for (const id of (hook.renderers ? hook.renderers.keys() : [1])) {
            const roots = hook.getFiberRoots(id);
            if (roots && roots.size > 0) return true;
        }
    }
    for (const selector of ['#root', '#app', '#__next', '[data-reactroot]', '[data-reactid]']) {
        const element = document.querySelector(selector);
        if (element && hasReactFiber(element)) return true;
    }
    const all = document.querySelectorAll('*');
    const step = Math.max(1, Math.floor(all.length / Math.min(100, all.length || 1)));
    for (let i = 0; i < all.length; i += step) {
        if (hasReactFiber(all[i])) return true;
    }
    return false;
}
"""


def install_instructions(browser_type: str) -> str:
    return (
        "Playwright browsers are not installed. Install them with:\n\n"
        f"    playwright install {browser_type}\n\n"
        "or install every engine with `playwright install`."
    )


class BrowserSession:
    """
    Thin wrapper around one Playwright browser and page

    ``close()`` is idempotent and safe to call when ``launch()`` failed.
    """

    def __init__(self, playwright_factory: Callable[[], Any] = sync_playwright):
        self._playwright_factory = playwright_factory
        self._playwright = None
        self.browser = None
        self.page = None
        self.browser_type: Optional[str] = None

    def is_launched(self) -> bool:
        return self.browser is not None and self.page is not None

    def _require_page(self):
        if self.page is None:
            raise RuntimeError("Browser not launched. Call launch() first.")
        return self.page

    def launch(self, browser_type: str = "chromium", headless: bool = True) -> None:
        if self.browser is not None:
            raise RuntimeError("Browser already launched. Call close() before launching again.")

        self.browser_type = browser_type
        try:
            self._playwright = self._playwright_factory().start()
            engine = getattr(self._playwright, browser_type, None)
            if engine is None or browser_type not in ("chromium", "firefox", "webkit"):
                raise LaunchError(browser_type, "Unsupported browser type")
            self.browser = engine.launch(headless=headless)
            self.page = self.browser.new_page()
        except LaunchError:
            raise
        except PlaywrightError as e:
            message = str(e)
            if any(marker in message for marker in _MISSING_BROWSER_MARKERS):
                raise LaunchError(browser_type, install_instructions(browser_type)) from e
            raise LaunchError(browser_type, message) from e

        logger.debug(f"Browser {browser_type} launched successfully")

    def navigate(
        self,
        url: str,
        timeout: int = 30000,
        wait_until: str = "networkidle",
        stabilization_delay: int = 0,
    ) -> None:
        page = self._require_page()
        try:
            page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise NavigationError(url, str(e), timed_out=True, timeout=timeout) from e
        except PlaywrightError as e:
            raise NavigationError(url, str(e)) from e
        logger.debug(f"Navigated to {url}")

        if stabilization_delay:
            page.wait_for_timeout(stabilization_delay)

    def wait_for_load_state(self, state: str = "networkidle", timeout: Optional[int] = None) -> bool:
        """Wait for a load state; returns False instead of raising on timeout"""
        try:
            self._require_page().wait_for_load_state(state, timeout=timeout)
            return True
        except PlaywrightTimeoutError:
            logger.debug("Network idle timeout - may indicate slow network or infinite loaders")
            return False

    def wait_for_navigation(self, timeout: int) -> bool:
        """Return True if a navigation happened within ``timeout`` ms"""
        try:
            with self._require_page().expect_navigation(timeout=timeout):
                pass
            return True
        except PlaywrightTimeoutError:
            return False

    def wait(self, milliseconds: int) -> None:
        if milliseconds > 0:
            self._require_page().wait_for_timeout(milliseconds)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        page = self._require_page()
        if arg is None:
            return page.evaluate(script)
        return page.evaluate(script, arg)

    def press_key(self, key: str) -> None:
        self._require_page().keyboard.press(key)

    def add_script_tag(self, path: Optional[str] = None, url: Optional[str] = None) -> None:
        if path:
            self._require_page().add_script_tag(path=path)
        else:
            self._require_page().add_script_tag(url=url)

    def detect_react(self) -> bool:
        return bool(self.evaluate(DETECT_REACT_SCRIPT))

    def close(self) -> None:
        """Close the page, then the browser process, then the driver"""
        try:
            if self.page is not None:
                try:
                    self.page.close()
                except PlaywrightError as e:
                    logger.debug(f"Error closing page: {e}")
            if self.browser is not None:
                try:
                    self.browser.close()
                except PlaywrightError as e:
                    logger.debug(f"Error closing browser: {e}")
        finally:
            self.page = None
            self.browser = None
            if self._playwright is not None:
                self._playwright.stop()
                self._playwright = None
        logger.debug("Browser closed")
