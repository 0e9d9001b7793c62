"""cedulascraper.cedulascraper.

Form automation and extraction runtime for the SEP professional-license
lookup portal.

The portal is a single-page application: its inputs may sit in the main
document or in any (nested) iframe, selector names drift between releases,
and a submitted query ends either in a result table or in a "no results"
message with no deterministic completion signal. The runtime therefore:

- resolves controls by accessible label first, then by ordered fallback
  selectors, sweeping every frame each time (:class:`ControlResolver`);
- fills only the fields the caller supplied and presses the search button
  (:class:`FormSession`);
- races "rows appeared" against "no-results text appeared" under one
  deadline;
- maps the first non-empty result table onto :class:`Candidate` records
  (:class:`ResultExtractor`).

The public contract:

- FormSession(page, cfg).run(query) -> ResultSet, raising a
  :class:`CedulaScraperError` subclass on failure.

Selectors and label patterns come from :mod:`cedulascraper.cedulasconfig`.
"""

from __future__ import annotations

import enum
import logging
import re
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .cedulasconfig import FIELD_NAMES, ButtonSpec, Config, ControlSpec
from .cedulasframes import FrameSet, poll_until_or_fail, race_until
from .cedulasmodels import (
    Candidate,
    FieldNotResolved,
    NavigationFailed,
    PageError,
    Query,
    ReadinessTimeout,
    ResultSet,
    RowWaitTimeout,
    SubmitControlNotFound,
)

if TYPE_CHECKING:
    from playwright.sync_api import Frame, Locator, Page

logger = logging.getLogger(__name__)

OUTCOME_ROWS = "rows"
OUTCOME_EMPTY = "empty"


# ----------------------------
# Probing
# ----------------------------


def _visible(loc: Locator, timeout_ms: int) -> bool:
    """
    Return True when ``loc`` becomes visible within ``timeout_ms``.

    A miss is the common case while the portal renders, so Playwright
    timeouts and detached-frame errors are answered with False here and
    nowhere else.
    """
    try:
        loc.wait_for(state="visible", timeout=timeout_ms)
    except (PlaywrightError, PlaywrightTimeoutError):
        return False
    return True


def _count(frame: Frame, selector: str) -> int:
    try:
        return frame.locator(selector).count()
    except PlaywrightError as exc:
        logger.debug("count(%r) failed on %s: %s", selector, frame.url, exc)
        return 0


def _norm(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip())


# ----------------------------
# Control resolution
# ----------------------------


class ControlResolver:
    """
    Resolve a :class:`ControlSpec` to a visible element in any frame.

    Resolution runs two full sweeps over the frames of a :class:`FrameSet`:
    first by accessible label, then by each fallback selector in order. A
    label match anywhere beats a selector match anywhere; within a sweep
    the main document wins over child frames. A control that is not found
    resolves to None rather than raising.
    """

    def __init__(self, probe_ms: int = 300, button_probe_ms: int = 500) -> None:
        # wait_for treats 0 as "no timeout"
        self.probe_ms = max(1, probe_ms)
        self.button_probe_ms = max(1, button_probe_ms)

    def _first_visible(
        self,
        frames: FrameSet,
        make: Callable[[Frame], Locator],
        timeout_ms: int,
    ) -> Locator | None:
        for frame in frames:
            try:
                loc = make(frame).first
            except PlaywrightError as exc:
                logger.debug("locator construction failed on %s: %s", frame.url, exc)
                continue
            if _visible(loc, timeout_ms):
                return loc
        return None

    def resolve(self, frames: FrameSet, spec: ControlSpec) -> Locator | None:
        if spec.label_pattern:
            label = re.compile(spec.label_pattern, re.IGNORECASE)
            loc = self._first_visible(
                frames, lambda f: f.get_by_label(label), self.probe_ms,
            )
            if loc is not None:
                return loc

        for selector in spec.fallback_selectors:
            loc = self._first_visible(
                frames,
                lambda f, s=selector: f.locator(s),
                self.probe_ms,
            )
            if loc is not None:
                return loc
        return None

    def resolve_button(self, frames: FrameSet, spec: ButtonSpec) -> Locator | None:
        name = re.compile(spec.name_pattern, re.IGNORECASE)
        loc = self._first_visible(
            frames,
            lambda f: f.get_by_role(spec.role, name=name),
            self.button_probe_ms,
        )
        if loc is not None or not spec.text:
            return loc
        return self._first_visible(
            frames,
            lambda f: f.locator("button", has_text=spec.text),
            self.button_probe_ms,
        )


# ----------------------------
# Extraction
# ----------------------------


class ResultExtractor:
    """
    Read result rows from the first frame that has any.

    Rows are never merged across frames: only one frame is expected to host
    the live result table. Header text is not parsed; cells are mapped by
    position with :meth:`Candidate.from_row`.
    """

    def __init__(
        self, row_selector: str = "table tbody tr", cell_selector: str = "td",
    ) -> None:
        self.row_selector = row_selector
        self.cell_selector = cell_selector

    def read_rows(self, frames: FrameSet) -> list[list[str]]:
        for frame in frames:
            if _count(frame, self.row_selector) == 0:
                continue
            row_loc = frame.locator(self.row_selector)
            rows: list[list[str]] = []
            for i in range(row_loc.count()):
                cells = row_loc.nth(i).locator(self.cell_selector)
                texts = cells.all_text_contents()
                rows.append([_norm(t) for t in texts])
            return rows
        return []

    def extract(self, frames: FrameSet) -> list[Candidate]:
        return [Candidate.from_row(r) for r in self.read_rows(frames)]


# ----------------------------
# Session runtime
# ----------------------------


class SessionState(enum.Enum):
    NEW = "new"
    AWAITING_READY = "awaiting_ready"
    FILLING = "filling"
    SUBMITTING = "submitting"
    AWAITING_OUTCOME = "awaiting_outcome"
    ROWS = "rows"
    EMPTY = "empty"
    FAILED = "failed"


class FormSession:
    """
    Drive one query through the portal form on a ready page.

    Responsibilities:

    - navigate to the portal and wait until any known field is visible
    - fill the non-empty query fields (lenient or strict, see
      ``Config.strict_fill``)
    - press the search button
    - race result rows against the no-results message
    - extract the rows into a :class:`ResultSet`

    The page belongs to the caller; the session neither creates nor closes
    it, and holds no state beyond one :meth:`run` call. Failures are raised
    as :class:`CedulaScraperError` subclasses; the session never retries.
    """

    def __init__(self, page: Page, cfg: Config) -> None:
        self.page = page
        self.cfg = cfg
        t = cfg.timeouts
        self.resolver = ControlResolver(t.probe_ms, t.button_probe_ms)
        self.extractor = ResultExtractor(cfg.row_selector, cfg.cell_selector)
        self.empty_pattern = re.compile(cfg.empty_result_pattern, re.IGNORECASE)
        self.state = SessionState.NEW
        self.unresolved_fields: list[str] = []

    def frames(self) -> FrameSet:
        return FrameSet.of(self.page)

    def _sleep(self, seconds: float) -> None:
        self.page.wait_for_timeout(seconds * 1000)

    def _enter(self, state: SessionState) -> None:
        logger.debug("FormSession: %s -> %s", self.state.value, state.value)
        self.state = state

    # ---- Navigation and readiness

    def navigate(self) -> None:
        """
        Load the portal and wait for the DOM.

        Navigation timeouts are tolerated because the SPA keeps fetching
        long after its form is usable; readiness decides. Any other
        navigation error means the page never loaded.
        """
        url = self.cfg.portal_url
        nav_ms = self.cfg.timeouts.navigation_ms
        try:
            self.page.goto(url, timeout=nav_ms, wait_until="domcontentloaded")
            self.page.wait_for_load_state("domcontentloaded", timeout=nav_ms)
        except PlaywrightTimeoutError:
            logger.warning("Navigation to %s timed out; waiting for form fields", url)
        except PlaywrightError as exc:
            logger.exception("Navigation to %s failed", url)
            msg = f"Could not load {url}: {exc}"
            raise NavigationFailed(msg) from exc

    def _any_field_visible(self, deadline: float) -> bool:
        frames = self.frames()
        for name in FIELD_NAMES:
            spec = self.cfg.control(name)
            if spec and self.resolver.resolve(frames, spec) is not None:
                return True
            # a sweep costs several probes per frame; stop at the deadline
            if time.monotonic() >= deadline:
                return False
        return False

    def wait_ready(self) -> None:
        self._enter(SessionState.AWAITING_READY)
        timeout_ms = self.cfg.timeouts.selector_ms
        deadline = time.monotonic() + timeout_ms / 1000
        poll_until_or_fail(
            lambda: self._any_field_visible(deadline),
            timeout_ms,
            ReadinessTimeout,
            "No se localizaron campos (posible cambio de layout o bloqueo remoto).",
            self.cfg.timeouts.poll_interval_ms,
            sleep=self._sleep,
        )

    # ---- Fill and submit

    def fill(self, query: Query) -> None:
        self._enter(SessionState.FILLING)
        self.unresolved_fields = []
        for name, value in query.filled_fields():
            spec = self.cfg.control(name)
            loc = self.resolver.resolve(self.frames(), spec) if spec else None
            if loc is None:
                if self.cfg.strict_fill:
                    raise FieldNotResolved(name)
                logger.warning("FormSession: %r control not found; skipping", name)
                self.unresolved_fields.append(name)
                continue
            loc.fill(value)
            logger.debug("FormSession: filled %r", name)

    def submit(self) -> None:
        self._enter(SessionState.SUBMITTING)
        btn = self.resolver.resolve_button(self.frames(), self.cfg.search_button)
        if btn is None:
            raise SubmitControlNotFound("No se pudo accionar el botón “Buscar”.")
        try:
            btn.click()
        except PlaywrightError as exc:
            raise SubmitControlNotFound(f"Search button click failed: {exc}") from exc

    # ---- Outcome

    def _rows_present(self) -> bool:
        return any(_count(f, self.cfg.row_selector) > 0 for f in self.frames())

    def _empty_message_visible(self) -> bool:
        return any(
            _visible(f.get_by_text(self.empty_pattern).first, self.resolver.probe_ms)
            for f in self.frames()
        )

    def await_outcome(self) -> str:
        """Return ``"rows"`` or ``"empty"``, whichever is detected first."""
        self._enter(SessionState.AWAITING_OUTCOME)
        timeout_ms = self.cfg.timeouts.outcome_ms
        outcome = race_until(
            {
                OUTCOME_ROWS: self._rows_present,
                OUTCOME_EMPTY: self._empty_message_visible,
            },
            timeout_ms,
            self.cfg.timeouts.poll_interval_ms,
            sleep=self._sleep,
        )
        if outcome is None:
            msg = f"Timeout esperando filas de resultados ({timeout_ms} ms)."
            raise RowWaitTimeout(msg)
        return outcome

    def run(self, query: Query) -> ResultSet:
        """
        Execute the whole query and return its :class:`ResultSet`.

        A "no results" answer from the portal is a successful, empty
        result. The session ends in ``ROWS``, ``EMPTY`` or ``FAILED``.
        Playwright errors that escape the probes (a fill on a detached
        element, a frame torn down while reading rows) are reported as
        :class:`PageError`.
        """
        try:
            self.navigate()
            self.wait_ready()
            self.fill(query)
            self.submit()
            outcome = self.await_outcome()
            if outcome == OUTCOME_EMPTY:
                self._enter(SessionState.EMPTY)
                logger.info("FormSession: portal reported no matches")
                return ResultSet.empty()
            records = self.extractor.extract(self.frames())
        except PlaywrightError as exc:
            logger.exception("FormSession: browser error in state %s", self.state.value)
            self.state = SessionState.FAILED
            raise PageError(f"Error del navegador: {exc}") from exc
        except Exception:
            self.state = SessionState.FAILED
            raise

        self._enter(SessionState.ROWS)
        result = ResultSet.from_records(records)
        logger.info("FormSession: %s matching records", result.total_count)
        return result

    def inspect(self) -> list[dict]:
        """Navigate, wait for the form and describe every frame's controls."""
        try:
            self.navigate()
            self.wait_ready()
            return self.frames().describe()
        except PlaywrightError as exc:
            raise PageError(f"Error del navegador: {exc}") from exc
