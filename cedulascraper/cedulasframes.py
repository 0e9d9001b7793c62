"""
cedulascraper.cedulasframes.

Frame snapshots and the bounded polling helpers every wait is built on.

Helpers
-------
- FrameSet.of(page): snapshot of the frames attached to a page, main
    document first. Re-read it on every poll tick; frames attach and detach
    while the portal renders.
- poll_until(pred, timeout_ms): poll ``pred`` until it returns True or the
    deadline passes. A timeout is a normal False result.
- poll_until_or_fail(pred, timeout_ms, error): same, but raise ``error``
    when the deadline passes.
- race_until(preds, timeout_ms): poll several predicates on the same tick
    and return the name of the first one seen true.
"""

import logging
import time
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from .cedulasmodels import CedulaScraperError

if TYPE_CHECKING:
    from playwright.sync_api import Frame, Page

logger = logging.getLogger(__name__)

_VISIBLE_CONTROLS_JS = """
() => {
  const vis = el => !!(el.offsetWidth || el.offsetHeight || el.getClientRects().length);
  return Array.from(document.querySelectorAll('input, select, textarea'))
    .filter(vis)
    .map(el => ({
      tag: el.tagName.toLowerCase(),
      id: el.id || '',
      fcn: el.getAttribute('formcontrolname') || '',
      ph: el.getAttribute('placeholder') || ''
    }));
}
"""


class FrameSet:
    """
    Read-only snapshot of ``page.frames``.

    Playwright lists the main frame first and child frames in attachment
    order, which is the search order used by the resolver and extractor.
    """

    def __init__(self, frames: list["Frame"]) -> None:
        self._frames = tuple(frames)

    @classmethod
    def of(cls, page: "Page") -> "FrameSet":
        return cls(list(page.frames))

    def __iter__(self) -> Iterator["Frame"]:
        return iter(self._frames)

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def main(self) -> "Frame | None":
        return self._frames[0] if self._frames else None

    def describe(self) -> list[dict[str, Any]]:
        """
        List the visible form controls of every frame.

        Returns one ``{"url": ..., "inputs": [...]}`` entry per frame, each
        input carrying ``tag``, ``id``, ``fcn`` (formcontrolname) and
        ``ph`` (placeholder). Used to rediscover selectors after the
        portal changes its markup.
        """
        return [
            {"url": f.url, "inputs": f.evaluate(_VISIBLE_CONTROLS_JS)} for f in self
        ]


def _sleep_s(seconds: float) -> None:
    time.sleep(seconds)


def poll_until(
    pred: Callable[[], bool],
    timeout_ms: int,
    interval_ms: int = 250,
    *,
    sleep: Callable[[float], None] = _sleep_s,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Poll ``pred`` until it returns True or ``timeout_ms`` elapses.

    The predicate runs at least once; later attempts never start at or
    after the deadline. Between attempts the helper sleeps ``interval_ms``
    but never past the deadline, so it returns no later than
    ``timeout_ms`` plus one predicate run. Exceptions raised by ``pred``
    are logged at the debug level and treated as a False result.
    """
    deadline = clock() + timeout_ms / 1000
    interval_s = interval_ms / 1000
    while True:
        try:
            if pred():
                return True
        except Exception as exc:  # noqa: BLE001 - probes race frame detach/navigation
            logger.debug("poll_until: predicate raised an exception: %s", exc)
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval_s, remaining))
        if clock() >= deadline:
            return False


def poll_until_or_fail(
    pred: Callable[[], bool],
    timeout_ms: int,
    error: type[CedulaScraperError],
    message: str = "",
    interval_ms: int = 250,
    *,
    sleep: Callable[[float], None] = _sleep_s,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Like :func:`poll_until` but raise ``error(message)`` on timeout."""
    if not poll_until(pred, timeout_ms, interval_ms, sleep=sleep, clock=clock):
        raise error(message or f"Condition not met within {timeout_ms} ms")


def race_until(
    preds: Mapping[str, Callable[[], bool]],
    timeout_ms: int,
    interval_ms: int = 250,
    *,
    sleep: Callable[[float], None] = _sleep_s,
    clock: Callable[[], float] = time.monotonic,
) -> str | None:
    """
    Race mutually exclusive conditions under one deadline.

    Every tick evaluates the predicates in mapping order and stops at the
    first one that is true, so whichever condition is *detected* first
    wins. Losing predicates are not probed again. Returns the winning key,
    or None when nothing became true before the deadline.
    """
    winner: list[str] = []

    def tick() -> bool:
        for name, pred in preds.items():
            try:
                if pred():
                    winner.append(name)
                    return True
            except Exception as exc:  # noqa: BLE001 - probes race frame detach/navigation
                logger.debug("race_until: %s raised an exception: %s", name, exc)
        return False

    if poll_until(tick, timeout_ms, interval_ms, sleep=sleep, clock=clock):
        return winner[0]
    return None
