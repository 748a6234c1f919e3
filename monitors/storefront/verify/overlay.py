"""Best-effort dismissal of blocking overlays (redirect prompts, marketing popups).

Dismissal is not a gate: callers proceed whatever the result. The boolean only
says whether the overlay was confirmed gone.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from ..errors import DriverError

logger = logging.getLogger("probe.storefront.overlay")

# Generic, markup-agnostic fallback: find a dialog-like surface covering the
# viewport centre and return the centre of its most close-like button.
DISMISS_OVERLAYS_JS = r"""
(() => {
  const vw = window.innerWidth || 0, vh = window.innerHeight || 0;
  if (!vw || !vh) return null;
  const shown = (el) => {
    try {
      const st = getComputedStyle(el);
      if (st.display === 'none' || st.visibility === 'hidden' || st.opacity === '0') return false;
    } catch (e) {}
    const r = el.getBoundingClientRect();
    return r.width > 2 && r.height > 2 && r.right > 0 && r.bottom > 0 && r.left < vw && r.top < vh;
  };
  const blocking = (el) => {
    const r = el.getBoundingClientRect();
    const centre = r.left <= vw / 2 && r.right >= vw / 2 && r.top <= vh / 2 && r.bottom >= vh / 2;
    if (!centre) return false;
    const role = (el.getAttribute('role') || '').toLowerCase();
    if (role === 'dialog' || role === 'alertdialog' || el.getAttribute('aria-modal') === 'true') return true;
    const hint = (String(el.id || '') + ' ' + String(el.className || '')).toLowerCase();
    const share = (r.width * r.height) / (vw * vh);
    let fixed = false;
    try { fixed = getComputedStyle(el).position === 'fixed'; } catch (e) {}
    return (fixed && share >= 0.25) || (share >= 0.2 && /modal|dialog|overlay|popup|backdrop/.test(hint));
  };
  let el = document.elementFromPoint(Math.floor(vw / 2), Math.floor(vh / 2));
  let overlay = null;
  for (let i = 0; i < 12 && el; i++, el = el.parentElement) {
    if (shown(el) && blocking(el)) { overlay = el; break; }
  }
  if (!overlay) return null;
  const label = (b) => String(b.getAttribute('aria-label') || b.getAttribute('title') || b.innerText || '').replace(/\s+/g, ' ').trim().toLowerCase();
  const score = (b) => {
    const s = label(b) + ' ' + String(b.className || '').toLowerCase();
    if (/(close|dismiss|×|✕|no thanks|not now|later|stay)/.test(s)) return 3;
    if (/(decline|cancel|no,|reject)/.test(s)) return 2;
    return 1;
  };
  let best = null, bestScore = 0;
  for (const b of overlay.querySelectorAll('button,[role="button"],a,input[type="button"]')) {
    if (!shown(b)) continue;
    const s = score(b);
    if (s > bestScore) { best = b; bestScore = s; }
  }
  if (!best) return { reason: 'overlay_no_buttons' };
  const r = best.getBoundingClientRect();
  return { x: r.left + r.width / 2, y: r.top + r.height / 2, score: bestScore, label: label(best).slice(0, 80) };
})()
""".strip()


@dataclass(frozen=True)
class OverlayConfig:
    """What the overlay looks like and how to get rid of it."""

    overlay_selector: str
    close_selectors: tuple[str, ...] = ()
    press_escape: bool = True
    generic_fallback: bool = False
    probe_timeout: float = 1.0
    click_timeout: float = 2.0
    click_pause: float = 0.5
    escape_pause: float = 0.5
    retry_pause: float = 1.0


def _overlay_visible(session: Any, config: OverlayConfig) -> bool:
    try:
        return bool(session.is_visible(config.overlay_selector, timeout=0))
    except DriverError as exc:
        # A closed page has no overlay left to block anything.
        logger.warning("overlay check failed selector=%s error=%s", config.overlay_selector, exc)
        return False


def _click_generic(session: Any) -> bool:
    try:
        res = session.eval_js(DISMISS_OVERLAYS_JS, timeout=2.0)
        if not isinstance(res, dict) or res.get("x") is None or res.get("y") is None:
            return False
        session.click(float(res["x"]), float(res["y"]))
    except DriverError as exc:
        logger.warning("generic overlay dismissal failed error=%s", exc)
        return False
    logger.info("generic overlay dismissal clicked label=%s", res.get("label"))
    return True


def _attempt(session: Any, config: OverlayConfig) -> None:
    for selector in config.close_selectors:
        try:
            if session.is_visible(selector, timeout=config.probe_timeout):
                session.click_selector(selector, timeout=config.click_timeout)
                time.sleep(config.click_pause)
        except DriverError as exc:
            logger.debug("close selector skipped selector=%s error=%s", selector, exc)

    if config.generic_fallback and _click_generic(session):
        time.sleep(config.click_pause)

    if config.press_escape:
        try:
            session.press_key("Escape")
        except DriverError as exc:
            logger.debug("escape failed error=%s", exc)
        time.sleep(config.escape_pause)


def dismiss_overlay(session: Any, config: OverlayConfig, *, max_attempts: int = 5) -> bool:
    """Click close controls / press Escape / re-check, up to ``max_attempts`` rounds.

    Returns True as soon as the overlay is confirmed gone, False once attempts run
    out. Never raises for driver failures.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        _attempt(session, config)
        if not _overlay_visible(session, config):
            logger.info("overlay dismissed selector=%s attempt=%d", config.overlay_selector, attempt)
            return True
        if attempt < attempts:
            time.sleep(config.retry_pause)
    logger.warning("overlay still visible selector=%s attempts=%d", config.overlay_selector, attempts)
    return False


def wait_and_dismiss_overlay(
    session: Any,
    config: OverlayConfig,
    *,
    timeout: float = 5.0,
    max_attempts: int = 5,
) -> bool:
    """Wait (bounded) for the overlay to show up, then dismiss it.

    An overlay that never appears counts as dismissed.
    """
    try:
        appeared = bool(session.is_visible(config.overlay_selector, timeout=max(0.0, min(timeout, 10.0))))
    except DriverError as exc:
        logger.warning("overlay wait failed selector=%s error=%s", config.overlay_selector, exc)
        return True
    if not appeared:
        logger.debug("no overlay within %.1fs selector=%s", timeout, config.overlay_selector)
        return True
    return dismiss_overlay(session, config, max_attempts=max_attempts)


__all__ = ["DISMISS_OVERLAYS_JS", "OverlayConfig", "dismiss_overlay", "wait_and_dismiss_overlay"]
