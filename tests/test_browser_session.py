from __future__ import annotations

import time
from typing import Any

import pytest

from monitors.storefront.browser_session import BrowserSession
from monitors.storefront.errors import DriverError, SessionClosed


class DummyConn:
    def __init__(self, evaluate: Any = None) -> None:
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.evaluate = evaluate
        self.timeout = 5.0
        self.closed = False
        self.inflight_requests = 0
        self.last_network_event_at = 0.0
        self.pumped = 0

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self.calls.append((method, params))
        if method == "Runtime.evaluate":
            ev = self.evaluate
            if isinstance(ev, Exception):
                raise ev
            return ev(params) if callable(ev) else ev or {}
        if method == "Page.addScriptToEvaluateOnNewDocument":
            return {"identifier": "7"}
        return {}

    def pump_events(self, duration: float) -> int:  # noqa: ARG002
        self.pumped += 1
        if self.pumped >= 3:
            self.inflight_requests = 0
        return 0

    def close(self) -> None:
        self.closed = True


def test_eval_js_returns_value_and_enables_runtime_once() -> None:
    conn = DummyConn({"result": {"type": "number", "value": 123}})
    session = BrowserSession(conn, tab_id="t1")
    assert session.eval_js("1 + 2") == 123
    assert session.eval_js("1 + 2") == 123
    methods = [m for m, _ in conn.calls]
    assert methods.count("Runtime.enable") == 1
    params = [p for m, p in conn.calls if m == "Runtime.evaluate"][0] or {}
    assert params.get("awaitPromise") is True
    assert params.get("returnByValue") is True


def test_eval_js_maps_undefined_and_null_to_none() -> None:
    assert BrowserSession(DummyConn({"result": {"type": "undefined"}}), "t1").eval_js("void 0") is None
    assert BrowserSession(DummyConn({"result": {"type": "object", "subtype": "null"}}), "t1").eval_js("null") is None


def test_eval_js_exception_details_raise_driver_error() -> None:
    conn = DummyConn({"exceptionDetails": {"text": "Uncaught", "exception": {"description": "ReferenceError: foo"}}})
    with pytest.raises(DriverError, match="ReferenceError"):
        BrowserSession(conn, "t1").eval_js("foo")


def test_closed_context_maps_to_session_closed() -> None:
    conn = DummyConn(DriverError("Cannot find context with specified id"))
    with pytest.raises(SessionClosed):
        BrowserSession(conn, "t1").eval_js("1")


def test_eval_js_timeout_is_restored() -> None:
    conn = DummyConn({"result": {"type": "string", "value": "https://a/"}})
    session = BrowserSession(conn, "t1")
    assert session.get_url() == "https://a/"
    assert conn.timeout == 5.0
    assert session.tab_url == "https://a/"


def test_add_init_script_returns_identifier() -> None:
    conn = DummyConn()
    assert BrowserSession(conn, "t1").add_init_script("1") == "7"
    assert ("Page.addScriptToEvaluateOnNewDocument", {"source": "1"}) in conn.calls


def test_text_content_and_visibility_polls_until_deadline(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(time, "sleep", lambda _s: None)
    states = iter([{"found": False}, {"found": True, "visible": False, "text": "0"}, {"found": True, "visible": True, "text": "1"}])

    def evaluate(_params: dict[str, Any]) -> dict[str, Any]:
        return {"result": {"type": "object", "value": next(states, {"found": True, "visible": True, "text": "1"})}}

    session = BrowserSession(DummyConn(evaluate), "t1")
    assert session.is_visible(".badge", timeout=5.0) is True
    assert session.text_content(".badge") == "1"


def test_missing_element_is_none_not_error() -> None:
    conn = DummyConn({"result": {"type": "object", "value": {"found": False}}})
    session = BrowserSession(conn, "t1")
    assert session.text_content(".nope", timeout=0) is None
    assert session.get_attribute(".nope", "aria-label", timeout=0) is None
    assert session.is_visible(".nope") is False
    with pytest.raises(DriverError):
        session.click_selector(".nope", timeout=0)


def test_wait_for_network_idle_pumps_until_quiet() -> None:
    conn = DummyConn()
    conn.inflight_requests = 2
    session = BrowserSession(conn, "t1")
    assert session.wait_for_network_idle(timeout=5.0, idle=0.0) is True
    assert conn.pumped == 3


def test_wait_for_network_idle_respects_ceiling() -> None:
    conn = DummyConn()
    conn.inflight_requests = 1
    conn.pump_events = lambda duration: 0  # type: ignore[method-assign]
    session = BrowserSession(conn, "t1")
    assert session.wait_for_network_idle(timeout=0.05, idle=0.0) is False


def test_navigate_ignores_load_event_from_previous_page() -> None:
    class NavConn(DummyConn):
        def __init__(self) -> None:
            super().__init__()
            self.queue: list[str] = ["Page.loadEventFired"]

        def discard_events(self, event_name: str) -> int:
            before = len(self.queue)
            self.queue = [m for m in self.queue if m != event_name]
            return before - len(self.queue)

        def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
            if method == "Page.navigate":
                self.queue.append("Page.frameNavigated")
            return super().send(method, params)

        def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:  # noqa: ARG002
            return {} if event_name in self.queue else None

    conn = NavConn()
    session = BrowserSession(conn, "t1")
    session.navigate("https://shop.example.com/cart", timeout=0.1)
    assert session.wait_load(0.1) is False
    assert ("Page.navigate", {"url": "https://shop.example.com/cart"}) in conn.calls
    assert session.tab_url == "https://shop.example.com/cart"
