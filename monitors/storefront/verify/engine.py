"""Generic decision procedure for fire-and-forget UI actions.

1. Baseline: read every indicator/control value the signals need (absent -> None).
2. Trigger the action once, then wait (bounded) for network quiescence.
3. Re-check the signals in priority order; the first one that fires decides.
4. Verdict is True iff some signal fired.

Every read goes through ``_guard`` so a missing element, a timeout or a closed
page turns that one check into "not observed" instead of aborting the journey.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from typing import Any

from ..errors import DriverError
from .signals import (
    ActionOutcome,
    ControlStateSignal,
    IndicatorChangeSignal,
    NavigationSignal,
    Signal,
    SignalResult,
    TransientAffordanceSignal,
)

logger = logging.getLogger("probe.storefront.verify")

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)*")
_THOUSANDS_RE = re.compile(r"-?\d{1,3}(?:,\d{3})+(?:\.\d+)?")
_INT_RE = re.compile(r"-?\d+")


def _guard(label: str, fn: Callable[[], Any], default: Any = None) -> Any:
    try:
        return fn()
    except DriverError as exc:
        logger.warning("signal read degraded check=%s error=%s", label, exc)
        return default


def parse_number(text: str | None) -> float | None:
    """First number in a badge-like text ("3", "Cart (3)", "1,5", "1,000"); None if there is none.

    A comma followed by groups of exactly three digits is a thousands separator;
    a single other comma is a decimal mark.
    """
    if not text:
        return None
    m = _NUMBER_RE.search(text)
    if not m:
        return None
    token = m.group(0)
    if _THOUSANDS_RE.fullmatch(token):
        token = token.replace(",", "")
    elif token.count(",") == 1 and "." not in token:
        token = token.replace(",", ".")
    try:
        return float(token)
    except ValueError:
        # "1.2.3" and similar: keep the leading integer.
        return float(_INT_RE.match(token).group(0))


def indicator_changed(before: str | None, after: str | None) -> tuple[bool, str]:
    """Compare two indicator readings. Returns ``(changed, how)``.

    A numeric increase is only credited when both values parse; two numbers that
    did not increase are "no change" even if their text differs.
    """
    if after is None or not after.strip():
        return False, "absent"
    if before is None or not before.strip():
        return True, "appeared"
    b, a = parse_number(before), parse_number(after)
    if b is not None and a is not None:
        return (a > b), ("increased" if a > b else "not_increased")
    if after.strip() != before.strip():
        return True, "text_changed"
    return False, "unchanged"


def _read_value(session: Any, selector: str, attribute: str | None, timeout: float) -> str | None:
    if attribute:
        return session.get_attribute(selector, attribute, timeout=timeout)
    return session.text_content(selector, timeout=timeout)


def _baseline(session: Any, signals: Sequence[Signal]) -> list[Any]:
    """One baseline per signal, aligned by position (names need not be unique)."""
    base: list[Any] = []
    for sig in signals:
        value = None
        if isinstance(sig, (IndicatorChangeSignal, ControlStateSignal)):
            value = _guard(
                f"{sig.name}:baseline",
                lambda sig=sig: _read_value(session, sig.selector, sig.attribute, min(sig.timeout, 1.0)),
            )
        elif isinstance(sig, NavigationSignal):
            value = _guard(f"{sig.name}:baseline", session.get_url)
        base.append(value)
    return base


def _search(label: str, pattern: str, text: str | None) -> bool:
    if not text:
        return False
    try:
        return re.search(pattern, text, re.IGNORECASE) is not None
    except re.error as exc:
        logger.warning("signal pattern invalid check=%s pattern=%s error=%s", label, pattern, exc)
        return False


def _check(session: Any, sig: Signal, before: Any) -> SignalResult:
    if isinstance(sig, NavigationSignal):
        after = _guard(f"{sig.name}:url", session.get_url)
        try:
            moved = sig.matches(after) and (after != before or not sig.matches(before))
        except re.error as exc:
            logger.warning("signal pattern invalid check=%s pattern=%s error=%s", sig.name, sig.url_pattern, exc)
            moved = False
        support = None
        if moved:
            for sel in sig.supporting_selectors:
                if _guard(f"{sig.name}:support", lambda sel=sel: session.is_visible(sel, timeout=sig.timeout), False):
                    support = sel
                    break
        return SignalResult(
            sig.name,
            sig.kind,
            checked=True,
            fired=bool(moved and support),
            detail={"before": before, "after": after, "matched": bool(moved), "support": support},
        )

    if isinstance(sig, IndicatorChangeSignal):
        after = _guard(f"{sig.name}:after", lambda: _read_value(session, sig.selector, sig.attribute, sig.timeout))
        fired, how = indicator_changed(before, after)
        return SignalResult(sig.name, sig.kind, checked=True, fired=fired, detail={"before": before, "after": after, "change": how})

    if isinstance(sig, TransientAffordanceSignal):
        seen = bool(_guard(f"{sig.name}:visible", lambda: session.is_visible(sig.selector, timeout=sig.timeout), False))
        return SignalResult(sig.name, sig.kind, checked=True, fired=seen, detail={"selector": sig.selector})

    if isinstance(sig, ControlStateSignal):
        after = _guard(f"{sig.name}:after", lambda: _read_value(session, sig.selector, sig.attribute, sig.timeout))
        if sig.expected:
            fired = _search(sig.name, sig.expected, after)
        else:
            fired = after is not None and before is not None and after.strip() != before.strip()
        return SignalResult(sig.name, sig.kind, checked=True, fired=fired, detail={"before": before, "after": after})

    return SignalResult(getattr(sig, "name", "?"), getattr(sig, "kind", "?"))


def verify_action(
    session: Any,
    trigger: Callable[[], Any],
    signals: Sequence[Signal],
    *,
    action: str = "",
    settle_timeout: float = 5.0,
    idle: float = 0.5,
    check_all: bool = False,
) -> ActionOutcome:
    """Trigger a UI action once and decide from the configured signals whether it took effect.

    Never raises for absent signals, driver errors or a closed page. ``check_all``
    keeps evaluating after the first fired signal (more diagnostics, more time).
    """
    ordered = sorted(signals, key=lambda s: s.priority)
    before = _baseline(session, ordered)

    try:
        trigger()
    except DriverError as exc:
        # The click may still have landed; let the signals decide.
        logger.warning("action trigger failed action=%s error=%s", action, exc)

    _guard(
        "settle",
        lambda: session.wait_for_network_idle(timeout=max(0.0, min(settle_timeout, 10.0)), idle=idle),
        False,
    )

    results: list[SignalResult] = []
    verdict = False
    for sig, baseline in zip(ordered, before):
        if verdict and not check_all:
            results.append(SignalResult(sig.name, sig.kind))
            continue
        res = _check(session, sig, baseline)
        results.append(res)
        verdict = verdict or res.fired

    outcome = ActionOutcome(verdict=verdict, signals=tuple(results), action=action)
    if not verdict:
        url = _guard("outcome:url", session.get_url)
        logger.warning(
            "action not confirmed action=%s url=%s signals=%s",
            action,
            url,
            [r.to_dict() for r in results],
        )
    else:
        logger.info("action confirmed action=%s by=%s", action, ",".join(outcome.fired))
    return outcome


__all__ = ["indicator_changed", "parse_number", "verify_action"]
