"""Client-side performance timing (LCP, CLS, interaction latency).

Two collectors share the same accumulation rules:

- in-page: ``VITALS_SCRIPT_SOURCE`` installed once per session through
  ``Page.addScriptToEvaluateOnNewDocument``; each navigation gets a fresh
  ``globalThis.__journeyVitals`` before any page script runs.
- server-side: ``VitalsAccumulator`` fed from ``PerformanceTimeline`` CDP events.
  It covers pages where the in-page read is unavailable (CSP, hardened
  contexts) and resets on every top-level navigation.

Rules:
- LCP: overwritten by each new entry; the last ``startTime`` wins.
- CLS: sum of layout-shift values without recent input; starts at 0, never decreases.
- Interaction latency: max event duration at or above 16 ms.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .errors import DriverError, SessionClosed, looks_closed
from .thresholds import VitalsThresholds

logger = logging.getLogger("probe.storefront.vitals")

VITALS_SCRIPT_SOURCE = r"""
(() => {
  const g = globalThis;
  if (g.__journeyVitals && g.__journeyVitals.__version === "1") return;
  const v = { __version: "1", lcp: null, cls: 0, inp: null };
  try {
    Object.defineProperty(g, "__journeyVitals", { value: v, configurable: true, enumerable: false, writable: true });
  } catch (_e) {
    g.__journeyVitals = v;
  }

  try {
    new PerformanceObserver((list) => {
      const entries = list.getEntries();
      const last = entries[entries.length - 1];
      if (last) v.lcp = last.startTime;
    }).observe({ type: "largest-contentful-paint", buffered: true });
  } catch (_e) {}

  try {
    new PerformanceObserver((list) => {
      for (const e of list.getEntries()) {
        if (!e.hadRecentInput) v.cls += e.value;
      }
    }).observe({ type: "layout-shift", buffered: true });
  } catch (_e) {}

  try {
    new PerformanceObserver((list) => {
      for (const e of list.getEntries()) {
        const dur = e.duration || 0;
        if (dur > (v.inp || 0)) v.inp = dur;
      }
    }).observe({ type: "event", buffered: true, durationThreshold: 16 });
  } catch (_e) {}
})();
""".strip()

_READ_EXPR = (
    "(() => { const v = globalThis.__journeyVitals; "
    "if (!v) return null; "
    "return { lcp: v.lcp ?? null, cls: v.cls ?? 0, inp: v.inp ?? null }; })()"
)


def _num(x: Any) -> float | None:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return None
    return float(x)


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{round(float(value), 4)}"


@dataclass(frozen=True)
class VitalsSnapshot:
    largest_contentful_paint: float | None = None
    cumulative_layout_shift: float = 0.0
    interaction_latency: float | None = None
    source: str = "page"

    @classmethod
    def from_page(cls, raw: dict[str, Any]) -> VitalsSnapshot:
        return cls(
            largest_contentful_paint=_num(raw.get("lcp")),
            cumulative_layout_shift=_num(raw.get("cls")) or 0.0,
            interaction_latency=_num(raw.get("inp")),
            source="page",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lcp": self.largest_contentful_paint,
            "cls": self.cumulative_layout_shift,
            "inp": self.interaction_latency,
            "source": self.source,
        }


@dataclass(frozen=True)
class VitalsValidation:
    passed: bool
    failures: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "failures": list(self.failures)}


def validate(snapshot: VitalsSnapshot, thresholds: VitalsThresholds) -> VitalsValidation:
    """Compare a snapshot against thresholds. Unset metrics are skipped, never failed."""
    failures: list[str] = []
    lcp = snapshot.largest_contentful_paint
    if lcp is not None and lcp > thresholds.lcp:
        failures.append(f"LCP {_fmt(lcp)}ms > {_fmt(thresholds.lcp)}ms")
    cls = snapshot.cumulative_layout_shift
    if cls is not None and cls > thresholds.cls:
        failures.append(f"CLS {_fmt(cls)} > {_fmt(thresholds.cls)}")
    inp = snapshot.interaction_latency
    if inp is not None and inp > thresholds.inp:
        failures.append(f"INP {_fmt(inp)}ms > {_fmt(thresholds.inp)}ms")
    return VitalsValidation(passed=not failures, failures=tuple(failures))


class VitalsCollector:
    """Installs the in-page observers once per session and reads them back."""

    def __init__(self) -> None:
        self.installed = False
        self.script_id: str | None = None

    def install(self, session: Any) -> bool:
        """Register the observer script; a second call is a no-op. Returns True on first install."""
        if self.installed:
            return False
        self.script_id = session.add_init_script(VITALS_SCRIPT_SOURCE)
        self.installed = True
        logger.debug("vitals collector installed script_id=%s", self.script_id)
        return True


def read_snapshot(session: Any) -> VitalsSnapshot:
    """Read the live in-page vitals; raises SessionClosed when the page is gone.

    A page where the collector never ran yields ``VitalsSnapshot(source="missing")``.
    """
    if bool(getattr(session, "is_closed", lambda: False)()):
        raise SessionClosed("page is closed")
    try:
        raw = session.eval_js(_READ_EXPR, timeout=2.0)
    except DriverError as exc:
        if looks_closed(exc):
            raise SessionClosed(str(exc)) from exc
        raise
    if not isinstance(raw, dict):
        return VitalsSnapshot(source="missing")
    return VitalsSnapshot.from_page(raw)


def read_snapshot_best_effort(session: Any) -> VitalsSnapshot | None:
    try:
        return read_snapshot(session)
    except DriverError as exc:
        logger.warning("vitals read failed error=%s", exc)
        return None


@dataclass
class VitalsAccumulator:
    """Server-side mirror of the in-page LCP and CLS rules, fed by CDP events.

    PerformanceTimeline carries no event-timing entries, so snapshots from this
    fallback never report interaction latency.
    """

    lcp: float | None = None
    cls: float = 0.0
    navigations: int = 0

    _nav_wall: float | None = field(default=None, repr=False)
    _pending_nav_wall: float | None = field(default=None, repr=False)

    def __call__(self, event: dict[str, Any]) -> None:
        self.ingest(event)

    def reset(self) -> None:
        self.lcp = None
        self.cls = 0.0

    def add_lcp(self, start_time_ms: float) -> None:
        self.lcp = float(start_time_ms)

    def add_layout_shift(self, value: float, had_recent_input: bool = False) -> None:
        if had_recent_input or value <= 0:
            return
        self.cls += float(value)

    def snapshot(self) -> VitalsSnapshot:
        return VitalsSnapshot(
            largest_contentful_paint=self.lcp,
            cumulative_layout_shift=self.cls,
            interaction_latency=None,
            source="timeline",
        )

    def ingest(self, event: dict[str, Any]) -> None:
        if not isinstance(event, dict):
            return
        method = event.get("method")
        params = event.get("params")
        if not isinstance(params, dict):
            return

        if method == "Network.requestWillBeSent":
            if params.get("type") == "Document" and params.get("loaderId") == params.get("requestId"):
                self._pending_nav_wall = _num(params.get("wallTime"))
            return

        if method == "Page.frameNavigated":
            frame = params.get("frame")
            if isinstance(frame, dict) and not frame.get("parentId"):
                self.reset()
                self.navigations += 1
                self._nav_wall = self._pending_nav_wall
            return

        if method != "PerformanceTimeline.timelineEventAdded":
            return
        ev = params.get("event")
        if not isinstance(ev, dict):
            return
        kind = ev.get("type")
        if kind == "layout-shift":
            details = ev.get("layoutShiftDetails")
            if isinstance(details, dict):
                value = _num(details.get("value"))
                if value is not None:
                    self.add_layout_shift(value, bool(details.get("hadRecentInput")))
            return
        if kind == "largest-contentful-paint":
            details = ev.get("lcpDetails") if isinstance(ev.get("lcpDetails"), dict) else {}
            at = _num(details.get("renderTime")) or _num(details.get("loadTime")) or _num(ev.get("time"))
            if at is not None and self._nav_wall is not None and at >= self._nav_wall:
                self.add_lcp((at - self._nav_wall) * 1000.0)
            return


__all__ = [
    "VITALS_SCRIPT_SOURCE",
    "VitalsAccumulator",
    "VitalsCollector",
    "VitalsSnapshot",
    "VitalsValidation",
    "read_snapshot",
    "read_snapshot_best_effort",
    "validate",
]
