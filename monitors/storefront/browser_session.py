"""BrowserSession: one CDP page target driven for the length of a journey.

This is the driver surface the rest of the package talks to. Anything with the
same method names works (tests pass small fakes):

- event subscription: ``conn.add_event_sink(callable)``
- ``add_init_script(source)``: runs before any page script on every navigation
- element queries with explicit timeouts: ``is_visible``, ``text_content``,
  ``get_attribute``, ``click_selector``, ``press_key``
- cross-context evaluation: ``eval_js(expression, timeout=...)``
- ``get_url()``, ``wait_for_network_idle(timeout, idle)``
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from .errors import DriverError, SessionClosed, looks_closed
from .session_cdp import CdpConnection

logger = logging.getLogger("probe.storefront.session")

_POLL_INTERVAL = 0.15

_ELEMENT_STATE_JS = r"""
((sel, attr) => {
  let el = null;
  try { el = document.querySelector(sel); } catch (e) { return { found: false, error: 'bad_selector' }; }
  if (!el) return { found: false };
  let visible = false;
  try {
    const r = el.getBoundingClientRect();
    const st = window.getComputedStyle(el);
    visible = !!(r && r.width > 0 && r.height > 0) &&
      st.display !== 'none' && st.visibility !== 'hidden' && Number(st.opacity || '1') !== 0;
  } catch (e) {}
  const out = { found: true, visible, text: String(el.textContent || '').trim().slice(0, 2000) };
  if (attr) {
    const v = el.getAttribute(attr);
    out.attr = v === null ? null : String(v).slice(0, 2000);
  }
  return out;
})
""".strip()

_ELEMENT_CENTER_JS = r"""
((sel) => {
  let el = null;
  try { el = document.querySelector(sel); } catch (e) { return null; }
  if (!el) return null;
  try { el.scrollIntoView({ block: 'center', inline: 'center' }); } catch (e) {}
  const r = el.getBoundingClientRect();
  if (!r || r.width <= 0 || r.height <= 0) return null;
  return { x: r.left + r.width / 2, y: r.top + r.height / 2 };
})
""".strip()

_KEY_CODES = {
    "Enter": 13,
    "Tab": 9,
    "Escape": 27,
    "Backspace": 8,
    "Delete": 46,
    "ArrowUp": 38,
    "ArrowDown": 40,
    "ArrowLeft": 37,
    "ArrowRight": 39,
}


class BrowserSession:
    """High-level browser session for a specific tab."""

    def __init__(self, connection: CdpConnection, tab_id: str, tab_url: str = ""):
        self.conn = connection
        self.tab_id = tab_id
        self.tab_url = tab_url
        self._enabled: set[str] = set()

    def __enter__(self) -> BrowserSession:
        self.enable_domains("Page")
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def is_closed(self) -> bool:
        return bool(getattr(self.conn, "closed", False))

    def enable_domains(self, *domains: str, strict: bool = True) -> None:
        """Enable CDP domains once per session (``Page``, ``Runtime``, ``Network``...)."""
        failures: list[str] = []
        for domain in domains:
            if domain in self._enabled:
                continue
            try:
                self.conn.send(f"{domain}.enable")
            except SessionClosed:
                raise
            except DriverError as exc:
                failures.append(f"{domain}: {exc}")
                continue
            self._enabled.add(domain)
        if strict and failures:
            raise DriverError("Failed to enable CDP domain(s): " + "; ".join(failures))

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            return self.conn.send(method, params)
        except SessionClosed:
            raise
        except DriverError as exc:
            if looks_closed(exc):
                raise SessionClosed(str(exc)) from exc
            raise

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation & scripts
    # ─────────────────────────────────────────────────────────────────────────

    def add_init_script(self, source: str) -> str | None:
        """Install a script that runs before any page script on every navigation."""
        self.enable_domains("Page")
        res = self.send("Page.addScriptToEvaluateOnNewDocument", {"source": source})
        identifier = res.get("identifier")
        return identifier if isinstance(identifier, str) and identifier else None

    def navigate(self, url: str, wait_load: bool = True, timeout: float = 30.0) -> str:
        self.enable_domains("Page")
        # A load event left over from an earlier navigation must not end this wait.
        stale = self.conn.discard_events("Page.loadEventFired")
        if stale:
            logger.debug("discarded stale load events count=%d", stale)
        res = self.send("Page.navigate", {"url": url})
        if isinstance(res.get("errorText"), str) and res.get("errorText"):
            raise DriverError(f"navigation failed: {res['errorText']}")
        if wait_load:
            self.wait_load(timeout)
        self.tab_url = url
        return url

    def wait_load(self, timeout: float = 30.0) -> bool:
        return self.conn.wait_for_event("Page.loadEventFired", timeout) is not None

    def wait_for_network_idle(self, timeout: float = 5.0, idle: float = 0.5) -> bool:
        """Wait until no request is in flight for `idle` seconds, at most `timeout`."""
        deadline = time.monotonic() + max(0.0, float(timeout))
        quiet_since: float | None = None
        while True:
            now = time.monotonic()
            if self.conn.inflight_requests == 0:
                quiet_since = quiet_since or max(now, self.conn.last_network_event_at)
                if now - quiet_since >= idle:
                    return True
            else:
                quiet_since = None
            remaining = deadline - now
            if remaining <= 0:
                return False
            self.conn.pump_events(min(_POLL_INTERVAL, remaining))

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def eval_js(self, expression: str, *, timeout: float | None = None) -> Any:
        """Evaluate JavaScript in the page and return the by-value result."""
        self.enable_domains("Runtime")

        old_timeout: float | None = None
        if timeout is not None:
            old_timeout = float(self.conn.timeout)
            self.conn.timeout = float(timeout)
        try:
            result = self.send(
                "Runtime.evaluate",
                {"expression": expression, "returnByValue": True, "awaitPromise": True},
            )
        finally:
            if old_timeout is not None:
                self.conn.timeout = old_timeout

        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            text = details.get("text") or "evaluation failed"
            exc = details.get("exception")
            if isinstance(exc, dict) and exc.get("description"):
                text = exc["description"]
            raise DriverError(f"Runtime.evaluate threw: {text}")

        value = result.get("result")
        if not isinstance(value, dict):
            return None
        # undefined has no "value" field; normalize undefined/null to None.
        if value.get("type") == "undefined":
            return None
        if value.get("type") == "object" and value.get("subtype") == "null":
            return None
        return value.get("value")

    def get_url(self) -> str:
        url = self.eval_js("window.location.href", timeout=2.0) or ""
        if url:
            self.tab_url = url
        return url

    # ─────────────────────────────────────────────────────────────────────────
    # Element queries (all bounded)
    # ─────────────────────────────────────────────────────────────────────────

    def _element_state(self, selector: str, attr: str | None = None) -> dict[str, Any]:
        expr = f"{_ELEMENT_STATE_JS}({json.dumps(selector)}, {json.dumps(attr)})"
        res = self.eval_js(expr, timeout=2.0)
        return res if isinstance(res, dict) else {"found": False}

    def _poll_state(self, selector: str, timeout: float, *, want_visible: bool, attr: str | None = None) -> dict[str, Any]:
        deadline = time.monotonic() + max(0.0, float(timeout))
        while True:
            state = self._element_state(selector, attr)
            if state.get("found") and (state.get("visible") or not want_visible):
                return state
            if time.monotonic() >= deadline:
                return state
            time.sleep(_POLL_INTERVAL)

    def is_visible(self, selector: str, timeout: float = 0.0) -> bool:
        state = self._poll_state(selector, timeout, want_visible=True)
        return bool(state.get("found") and state.get("visible"))

    def text_content(self, selector: str, timeout: float = 1.0) -> str | None:
        state = self._poll_state(selector, timeout, want_visible=False)
        if not state.get("found"):
            return None
        text = state.get("text")
        return text if isinstance(text, str) else None

    def get_attribute(self, selector: str, name: str, timeout: float = 1.0) -> str | None:
        state = self._poll_state(selector, timeout, want_visible=False, attr=name)
        if not state.get("found"):
            return None
        val = state.get("attr")
        return val if isinstance(val, str) else None

    def click_selector(self, selector: str, timeout: float = 2.0) -> None:
        """Click the centre of the first visible match; raises DriverError if none appears."""
        if not self.is_visible(selector, timeout=timeout):
            raise DriverError(f"element not visible: {selector}")
        point = self.eval_js(f"{_ELEMENT_CENTER_JS}({json.dumps(selector)})", timeout=2.0)
        if not isinstance(point, dict):
            raise DriverError(f"element has no clickable box: {selector}")
        self.click(float(point["x"]), float(point["y"]))

    # ─────────────────────────────────────────────────────────────────────────
    # Input
    # ─────────────────────────────────────────────────────────────────────────

    def click(self, x: float, y: float, button: str = "left", click_count: int = 1) -> None:
        for kind in ("mousePressed", "mouseReleased"):
            self.send(
                "Input.dispatchMouseEvent",
                {"type": kind, "x": x, "y": y, "button": button, "clickCount": click_count},
            )

    def press_key(self, key: str, modifiers: int = 0) -> None:
        key_code = _KEY_CODES.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        code = f"Key{key.upper()}" if len(key) == 1 else key
        for kind in ("keyDown", "keyUp"):
            self.send(
                "Input.dispatchKeyEvent",
                {
                    "type": kind,
                    "key": key,
                    "code": code,
                    "windowsVirtualKeyCode": key_code,
                    "modifiers": modifiers,
                },
            )


__all__ = ["BrowserSession"]
