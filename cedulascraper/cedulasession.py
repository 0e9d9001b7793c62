"""
cedulascraper.cedulasession.

Browser lifecycle for lookup requests: one shared browser process and a
fresh, isolated context + page per request.

Helpers
-------
- PageProvider(cfg): owns the Playwright driver and the browser. The
    browser is launched lazily on first use and exactly once, even when
    several request threads ask for it at the same time.
- PageProvider.run(job): open a new context/page, call ``job(page)`` on
    the browser thread and always close the context afterwards. The
    caller waits at most ``job_timeout_ms``, queueing included.
- PageProvider.shutdown(): close the browser and stop the driver. Safe to
    call more than once.

The synchronous Playwright API is bound to the thread that started it, so
every browser call is funnelled through a single worker thread owned by
the provider.
"""

import contextlib
import logging
import re
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TypeVar

from playwright.sync_api import Browser, BrowserContext, Page, Route, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from .cedulasconfig import BrowserConfig
from .cedulasmodels import BrowserBusy, BrowserUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_context(browser: Browser, cfg: BrowserConfig) -> BrowserContext:
    """Create an isolated context with the portal's locale and user agent."""
    return browser.new_context(
        locale=cfg.locale,
        timezone_id=cfg.timezone_id,
        ignore_https_errors=cfg.ignore_https_errors,
        user_agent=cfg.user_agent,
        viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
    )


def prepare_page(page: Page, cfg: BrowserConfig) -> Page:
    """
    Apply default timeouts and abort heavy media/font requests.

    ``cfg.blocked_resources`` is a regular expression tested against each
    request URL; an empty pattern disables blocking.
    """
    page.set_default_timeout(cfg.default_timeout_ms)
    page.set_default_navigation_timeout(cfg.navigation_timeout_ms)

    if cfg.blocked_resources:
        blocked = re.compile(cfg.blocked_resources, re.IGNORECASE)

        def _route(route: Route) -> None:
            if blocked.search(route.request.url):
                route.abort()
            else:
                route.continue_()

        page.route("**/*", _route)
    return page


class PageProvider:
    """
    Lazily launched, shared browser handing out one page per request.

    Launch is single-flight: the first caller schedules it and memoizes the
    pending :class:`Future`; concurrent callers get that same future. A
    failed launch is forgotten so the next request tries again.
    """

    def __init__(self, cfg: BrowserConfig | None = None) -> None:
        self.cfg = cfg or BrowserConfig()
        self._lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None
        self._launch: Future | None = None
        self._play = None
        self._browser: Browser | None = None
        self._closed = False

    # ---- Lifecycle

    def _start(self) -> Browser:
        """Start the driver and launch the browser (browser thread only)."""
        self._play = sync_playwright().start()
        try:
            browser_type = getattr(self._play, self.cfg.browser)
            browser = browser_type.launch(
                headless=self.cfg.headless, args=list(self.cfg.launch_args),
            )
        except PlaywrightError:
            self._play.stop()
            self._play = None
            raise
        logger.info(
            "PageProvider: %s launched (headless=%s)",
            self.cfg.browser,
            self.cfg.headless,
        )
        self._browser = browser
        return browser

    def _forget_failed_launch(self, fut: Future) -> None:
        if fut.exception() is None:
            return
        logger.error("PageProvider: browser launch failed: %s", fut.exception())
        with self._lock:
            if self._launch is fut:
                self._launch = None

    def ensure_browser(self) -> Future:
        """Return the (possibly still pending) browser launch future."""
        with self._lock:
            if self._closed:
                raise RuntimeError("PageProvider has been shut down")
            if self._launch is not None:
                return self._launch
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="cedulas-browser",
                )
            fut = self._executor.submit(self._start)
            self._launch = fut
            # runs inline when the launch has already failed
            fut.add_done_callback(self._forget_failed_launch)
            return fut

    def shutdown(self) -> None:
        """Close the browser and stop Playwright; later calls are no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            executor, self._executor = self._executor, None
            self._launch = None

        if executor is None:
            return

        def _stop() -> None:
            if self._browser is not None:
                with contextlib.suppress(PlaywrightError):
                    self._browser.close()
                self._browser = None
            if self._play is not None:
                self._play.stop()
                self._play = None

        try:
            executor.submit(_stop).result()
        finally:
            executor.shutdown(wait=True)
        logger.info("PageProvider: browser shut down")

    # ---- Pages

    def run(self, job: Callable[[Page], T], timeout_ms: int | None = None) -> T:
        """
        Run ``job`` against a fresh page and return its result.

        Jobs share one browser thread and run one at a time, so the wait
        covers time spent queued behind other lookups. It is bounded by
        ``timeout_ms`` (default ``cfg.job_timeout_ms``); on expiry a queued
        job is cancelled, a running one is abandoned, and
        :class:`BrowserBusy` is raised. A failed launch raises
        :class:`BrowserUnavailable`. The context is closed whatever ``job``
        does; exceptions raised by ``job`` propagate unchanged.
        """
        launch = self.ensure_browser()
        wait_ms = timeout_ms if timeout_ms is not None else self.cfg.job_timeout_ms

        def _in_browser_thread() -> T:
            try:
                browser = launch.result()
            except PlaywrightError as exc:
                raise BrowserUnavailable(f"Browser launch failed: {exc}") from exc
            ctx = new_context(browser, self.cfg)
            try:
                page = prepare_page(ctx.new_page(), self.cfg)
                return job(page)
            finally:
                with contextlib.suppress(PlaywrightError):
                    ctx.close()

        with self._lock:
            executor = self._executor
        if executor is None:
            raise RuntimeError("PageProvider has been shut down")
        fut = executor.submit(_in_browser_thread)
        try:
            return fut.result(timeout=wait_ms / 1000)
        except FutureTimeoutError:
            if not fut.cancel():
                logger.warning(
                    "PageProvider: abandoning a job still running after %s ms", wait_ms,
                )
            raise BrowserBusy(
                f"El navegador no atendió la consulta en {wait_ms} ms.",
            ) from None
