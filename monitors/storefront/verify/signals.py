"""Named signal checks, loadable from plain configuration dicts.

Each signal is one independently fallible piece of evidence that a UI action
took effect. Signals never decide alone what "success" means for a site: the
journey configuration lists which ones apply and the engine evaluates them in
priority order.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Union

from ..errors import MonitorError


@dataclass(frozen=True)
class NavigationSignal:
    """URL moved to the expected destination and the destination looks real.

    ``url_pattern`` is a regular expression searched in the URL. Intermediate or
    loading URLs are common, so at least one of ``supporting_selectors`` must be
    visible before the signal fires.
    """

    url_pattern: str
    supporting_selectors: tuple[str, ...]
    name: str = "navigation"
    timeout: float = 3.0
    kind = "navigation"
    priority = 0

    def matches(self, url: str | None) -> bool:
        return bool(url) and re.search(self.url_pattern, url or "") is not None


@dataclass(frozen=True)
class IndicatorChangeSignal:
    """A badge/counter/label changed relative to its pre-action baseline."""

    selector: str
    name: str = "indicator"
    attribute: str | None = None
    timeout: float = 1.0
    kind = "indicator"
    priority = 1


@dataclass(frozen=True)
class TransientAffordanceSignal:
    """A short-lived success surface (toast, banner, drawer) became visible."""

    selector: str
    name: str = "affordance"
    timeout: float = 2.0
    kind = "affordance"
    priority = 2


@dataclass(frozen=True)
class ControlStateSignal:
    """The triggering control itself changed state (label or attribute flip)."""

    selector: str
    name: str = "control"
    attribute: str | None = None
    timeout: float = 1.0
    expected: str | None = None
    kind = "control"
    priority = 3


Signal = Union[NavigationSignal, IndicatorChangeSignal, TransientAffordanceSignal, ControlStateSignal]


@dataclass(frozen=True)
class SignalResult:
    name: str
    kind: str
    checked: bool = False
    fired: bool = False
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "checked": self.checked,
            "fired": self.fired,
            **({"detail": self.detail} if self.detail else {}),
        }


@dataclass(frozen=True)
class ActionOutcome:
    verdict: bool
    signals: tuple[SignalResult, ...] = ()
    action: str = ""

    @property
    def fired(self) -> list[str]:
        return [s.name for s in self.signals if s.fired]

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "verdict": self.verdict,
            "fired": self.fired,
            "signals": [s.to_dict() for s in self.signals],
        }


_KINDS = {
    "navigation": NavigationSignal,
    "indicator": IndicatorChangeSignal,
    "indicator_change": IndicatorChangeSignal,
    "affordance": TransientAffordanceSignal,
    "transient_affordance": TransientAffordanceSignal,
    "toast": TransientAffordanceSignal,
    "control": ControlStateSignal,
    "control_state": ControlStateSignal,
}


def _config_error(reason: str, suggestion: str, item: Any) -> MonitorError:
    return MonitorError(
        component="verify",
        action="signals_from_config",
        reason=reason,
        suggestion=suggestion,
        details={"item": item},
    )


def _selectors(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        return (raw,) if raw.strip() else ()
    if isinstance(raw, (list, tuple)):
        return tuple(s for s in raw if isinstance(s, str) and s.strip())
    return ()


def signal_from_config(item: dict[str, Any]) -> Signal:
    if not isinstance(item, dict):
        raise _config_error("signal entry is not a mapping", "Use {'kind': ..., ...}", item)
    kind = str(item.get("kind") or "").strip().lower().replace("-", "_")
    cls = _KINDS.get(kind)
    if cls is None:
        raise _config_error(
            f"unknown signal kind {item.get('kind')!r}",
            "Use one of: navigation, indicator, affordance, control",
            item,
        )

    opts: dict[str, Any] = {}
    if isinstance(item.get("name"), str) and item["name"]:
        opts["name"] = item["name"]
    if isinstance(item.get("timeout"), (int, float)) and not isinstance(item.get("timeout"), bool):
        opts["timeout"] = max(0.0, min(float(item["timeout"]), 10.0))

    if cls is NavigationSignal:
        pattern = item.get("url_pattern") or item.get("url")
        supporting = _selectors(item.get("supporting_selectors") or item.get("supporting"))
        if not isinstance(pattern, str) or not pattern:
            raise _config_error("navigation signal needs url_pattern", "Set 'url_pattern', e.g. '/cart'", item)
        if not supporting:
            raise _config_error(
                "navigation signal needs a supporting assertion",
                "Set 'supporting_selectors' to elements only the destination page renders",
                item,
            )
        try:
            re.compile(pattern)
        except re.error as exc:
            raise _config_error(f"invalid url_pattern: {exc}", "Fix the regular expression", item) from exc
        return NavigationSignal(url_pattern=pattern, supporting_selectors=supporting, **opts)

    selector = item.get("selector")
    if not isinstance(selector, str) or not selector.strip():
        raise _config_error(f"{kind} signal needs a selector", "Set 'selector' to a CSS selector", item)
    if cls is not TransientAffordanceSignal and isinstance(item.get("attribute"), str) and item["attribute"]:
        opts["attribute"] = item["attribute"]
    if cls is ControlStateSignal and isinstance(item.get("expected"), str) and item["expected"]:
        try:
            re.compile(item["expected"])
        except re.error as exc:
            raise _config_error(f"invalid expected pattern: {exc}", "Fix the regular expression", item) from exc
        opts["expected"] = item["expected"]
    return cls(selector=selector, **opts)


def signals_from_config(items: Iterable[dict[str, Any]]) -> tuple[Signal, ...]:
    """Parse a list of ``{"kind": ..., ...}`` dicts; raises MonitorError on bad entries.

    Signal names must be unique: results are reported by name.
    """
    out: list[Signal] = []
    seen: set[str] = set()
    for item in items:
        sig = signal_from_config(item)
        if sig.name in seen:
            raise _config_error(
                f"duplicate signal name {sig.name!r}",
                "Give each signal of the same kind a distinct 'name'",
                item,
            )
        seen.add(sig.name)
        out.append(sig)
    return tuple(out)


__all__ = [
    "ActionOutcome",
    "ControlStateSignal",
    "IndicatorChangeSignal",
    "NavigationSignal",
    "Signal",
    "SignalResult",
    "TransientAffordanceSignal",
    "signal_from_config",
    "signals_from_config",
]
