"""Raw CDP WebSocket connection (websocket-client).

Events are fanned out synchronously to registered sinks on the thread that reads
the socket, so sink bodies must stay short and must not call back into the
connection.
"""

from __future__ import annotations

import json
import logging
import socket
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from .errors import DriverError, SessionClosed

logger = logging.getLogger("probe.storefront.cdp")

EventSink = Callable[[dict[str, Any]], None]


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, socket.timeout, websocket.WebSocketTimeoutException)):
        return True
    msg = str(exc).lower()
    return "timed out" in msg or "would block" in msg


class CdpConnection:
    """Low-level CDP WebSocket connection."""

    def __init__(self, ws_url: str, timeout: float = 5.0, *, ws: Any | None = None):
        if ws is None:
            try:
                ws = websocket.create_connection(ws_url, timeout=timeout)
            except (OSError, websocket.WebSocketException) as exc:
                raise DriverError(f"CDP connect failed: {exc}") from exc
        self.ws = ws
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        # Events received while waiting for command responses must not be dropped.
        self._event_queue: list[dict[str, Any]] = []
        self._max_event_queue = 2000
        self._sinks: list[EventSink] = []
        self._closed = False

        # Minimal in-flight tracking for network-idle waits.
        self._inflight: set[str] = set()
        self.last_network_event_at = time.monotonic()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def inflight_requests(self) -> int:
        return len(self._inflight)

    def add_event_sink(self, sink: EventSink) -> None:
        if not any(s is sink for s in self._sinks):
            self._sinks.append(sink)

    def remove_event_sink(self, sink: EventSink) -> None:
        self._sinks = [s for s in self._sinks if s is not sink]

    def _track_network(self, event: dict[str, Any]) -> None:
        method = event.get("method") or ""
        if not method.startswith("Network."):
            return
        self.last_network_event_at = time.monotonic()
        params = event.get("params") if isinstance(event.get("params"), dict) else {}
        rid = params.get("requestId")
        if not isinstance(rid, str):
            return
        if method == "Network.requestWillBeSent":
            self._inflight.add(rid)
        elif method in {"Network.loadingFinished", "Network.loadingFailed"}:
            self._inflight.discard(rid)

    def _dispatch(self, event: dict[str, Any]) -> None:
        self._track_network(event)
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:  # noqa: BLE001
                # Evidence collection must never break browser operations.
                logger.warning("event sink failed method=%s", event.get("method"), exc_info=True)

    def _push_event(self, event: dict[str, Any]) -> None:
        if not isinstance(event, dict) or not isinstance(event.get("method"), str):
            return
        self._dispatch(event)
        self._event_queue.append(event)
        if len(self._event_queue) > self._max_event_queue:
            del self._event_queue[: len(self._event_queue) - self._max_event_queue]

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Pop the oldest queued event params for the given event name."""
        for i, ev in enumerate(self._event_queue):
            if ev.get("method") == event_name:
                self._event_queue.pop(i)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def discard_events(self, event_name: str) -> int:
        """Drop buffered events of one kind (already dispatched to sinks); returns how many."""
        self.drain_events()
        kept = [ev for ev in self._event_queue if ev.get("method") != event_name]
        dropped = len(self._event_queue) - len(kept)
        self._event_queue = kept
        return dropped

    def _recv(self, wait: float) -> dict[str, Any] | None:
        """Receive one frame; None on timeout or unparseable frame."""
        if self._closed:
            raise SessionClosed("CDP connection is already closed")
        try:
            self.ws.settimeout(wait)
            raw = self.ws.recv()
        except websocket.WebSocketConnectionClosedException as exc:
            self._closed = True
            raise SessionClosed(str(exc) or "CDP connection is already closed") from exc
        except Exception as exc:  # noqa: BLE001
            if _is_timeout(exc):
                return None
            raise DriverError(str(exc)) from exc
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def drain_events(self, *, max_messages: int = 50) -> int:
        """Drain already-buffered events without blocking."""
        drained = 0
        for _ in range(max(0, int(max_messages))):
            try:
                data = self._recv(0.0)
            except DriverError:
                break
            if data is None:
                break
            if isinstance(data.get("method"), str) and "id" not in data:
                self._push_event(data)
                drained += 1
                continue
            # Unexpected non-event; stop to avoid consuming responses.
            break
        return drained

    def pump_events(self, duration: float) -> int:
        """Read and dispatch events for up to `duration` seconds."""
        received = 0
        deadline = time.monotonic() + max(0.0, float(duration))
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            data = self._recv(min(0.2, remaining))
            if data is None:
                continue
            if isinstance(data.get("method"), str) and "id" not in data:
                self._push_event(data)
                received += 1
        return received

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        if self._closed:
            raise SessionClosed("CDP connection is already closed")
        msg_id = self._next_id
        self._next_id += 1

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        try:
            self.ws.settimeout(min(2.0, max(0.5, float(self.timeout))))
            self.ws.send(json.dumps(msg))
        except websocket.WebSocketConnectionClosedException as exc:
            self._closed = True
            raise SessionClosed(str(exc) or "CDP connection is already closed") from exc
        except Exception as exc:  # noqa: BLE001
            raise DriverError(str(exc)) from exc

        return self._recv_until(msg_id)

    def _recv_until(self, expected_id: int) -> dict[str, Any]:
        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DriverError("CDP response timed out")
            data = self._recv(min(0.5, remaining))
            if data is None:
                continue
            if isinstance(data.get("method"), str) and "id" not in data:
                self._push_event(data)
                continue
            if data.get("id") == expected_id:
                if "error" in data:
                    err = data["error"]
                    text = err.get("message") if isinstance(err, dict) else str(err)
                    raise DriverError(str(text))
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Wait for specific CDP event (bounded)."""
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued

        deadline = time.monotonic() + max(0.0, float(timeout))
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            data = self._recv(min(0.5, remaining))
            if data is None:
                continue
            if isinstance(data.get("method"), str) and "id" not in data:
                if data.get("method") == event_name:
                    self._dispatch(data)
                    params = data.get("params")
                    return params if isinstance(params, dict) else {}
                self._push_event(data)

    def close(self) -> None:
        """Close the WebSocket without a graceful handshake."""
        self._closed = True
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(OSError):
                sock.close()


__all__ = ["CdpConnection", "EventSink"]
