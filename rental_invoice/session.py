"""Headless Chromium session that prints one invoice to PDF.

A :class:`RenderSession` owns exactly one browser for exactly one document::

    with RenderSession() as session:
        pdf = session.render(html)

Leaving the ``with`` block releases the browser whatever happened inside it,
including retry exhaustion, timeouts and interrupts.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Dict, Optional, Protocol
from urllib.parse import quote

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import LAUNCH_TIMEOUT_MS, NAVIGATION_ATTEMPTS, NAVIGATION_TIMEOUT_MS, OPERATION_TIMEOUT_MS
from .errors import EngineUnavailable, NavigationExhausted, RenderTimeout

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
]

PDF_OPTIONS: Dict[str, Any] = {
    "format": "A4",
    "print_background": True,
    "margin": {"top": "10px", "right": "10px", "bottom": "10px", "left": "10px"},
    "prefer_css_page_size": True,
}

# Transient Chromium navigation failure, the only one that is retried.
FRAME_DETACHED = "frame was detached"


class Page(Protocol):
    def set_default_navigation_timeout(self, timeout: float) -> None:
        ...

    def set_default_timeout(self, timeout: float) -> None:
        ...

    def goto(self, url: str, **kwargs: Any) -> Any:
        ...

    def pdf(self, **kwargs: Any) -> bytes:
        ...


class Engine(Protocol):
    def new_page(self) -> Page:
        ...

    def close(self) -> None:
        ...


Launcher = Callable[[int], Engine]


class SessionState(enum.Enum):
    IDLE = "idle"
    LAUNCHED = "launched"
    NAVIGATING = "navigating"
    RENDERED = "rendered"
    CLOSED = "closed"
    FAILED = "failed"


def is_frame_detached(exc: BaseException) -> bool:
    # Playwright has no error code for this condition, only the message.
    return FRAME_DETACHED in str(exc).lower()


def html_data_url(markup: str) -> str:
    return "data:text/html," + quote(markup, safe="")


class PlaywrightEngine:
    """Playwright driver plus one headless Chromium browser."""

    def __init__(self, playwright: Any, browser: Any) -> None:
        self._playwright = playwright
        self._browser = browser

    @classmethod
    def launch(cls, timeout_ms: int = LAUNCH_TIMEOUT_MS) -> "PlaywrightEngine":
        playwright = sync_playwright().start()
        try:
            browser = playwright.chromium.launch(
                headless=True,
                args=CHROMIUM_ARGS,
                timeout=timeout_ms,
                chromium_sandbox=False,
            )
        except BaseException:
            playwright.stop()
            raise
        return cls(playwright, browser)

    def new_page(self) -> Page:
        return self._browser.new_page()

    def close(self) -> None:
        try:
            self._browser.close()
        finally:
            self._playwright.stop()


class RenderSession:
    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        launch_timeout_ms: int = LAUNCH_TIMEOUT_MS,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        operation_timeout_ms: int = OPERATION_TIMEOUT_MS,
        max_attempts: int = NAVIGATION_ATTEMPTS,
    ) -> None:
        self._launcher = launcher or PlaywrightEngine.launch
        self._engine: Optional[Engine] = None
        self.launch_timeout_ms = launch_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.operation_timeout_ms = operation_timeout_ms
        self.max_attempts = max(1, max_attempts)
        self.state = SessionState.IDLE

    def __enter__(self) -> "RenderSession":
        self.launch()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def launch(self) -> None:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Render session is single-use (state: {self.state.value}).")
        try:
            self._engine = self._launcher(self.launch_timeout_ms)
        except Exception as exc:
            self.state = SessionState.FAILED
            raise EngineUnavailable(f"Could not launch headless browser: {exc}") from exc
        self.state = SessionState.LAUNCHED

    def render(self, markup: str) -> bytes:
        if self.state is not SessionState.LAUNCHED or self._engine is None:
            raise RuntimeError(f"Render session is not ready (state: {self.state.value}).")
        try:
            page = self._engine.new_page()
            page.set_default_navigation_timeout(self.navigation_timeout_ms)
            page.set_default_timeout(self.operation_timeout_ms)
            self.state = SessionState.NAVIGATING
            self._navigate(page, html_data_url(markup), f"data:text/html ({len(markup)} chars)")
            pdf = page.pdf(**PDF_OPTIONS)
        except PlaywrightTimeoutError as exc:
            self.state = SessionState.FAILED
            raise RenderTimeout(f"Headless browser timed out: {exc}") from exc
        except BaseException:
            self.state = SessionState.FAILED
            raise
        self.state = SessionState.RENDERED
        return pdf

    def _navigate(self, page: Page, url: str, target: str) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                page.goto(url, wait_until="networkidle")
                return
            except PlaywrightTimeoutError:
                raise
            except Exception as exc:
                if not is_frame_detached(exc):
                    raise
                logger.warning("Retrying navigation to %s (%d/%d)", target, attempt, self.max_attempts)
        raise NavigationExhausted(target, self.max_attempts)

    def close(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                engine.close()
            except PlaywrightError as exc:
                logger.warning("Headless browser did not close cleanly: %s", exc)
        if self.state is not SessionState.FAILED:
            self.state = SessionState.CLOSED
