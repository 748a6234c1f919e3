"""Request/response ledger built from raw CDP events (server-side, no page injection).

The correlator is fed synchronously from the connection's event sink. Handlers
only mutate in-memory state: no I/O, no awaiting, no calls back into the driver.

Correlation key is the transport identity (``requestId``). URLs are never used
to pair a response with its request: the same URL is routinely fetched twice.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("probe.storefront.telemetry")


def _str(x: Any, *, max_len: int = 500) -> str:
    try:
        s = str(x)
    except Exception:  # noqa: BLE001
        s = "<unstringifiable>"
    if len(s) <= max_len:
        return s
    return s[:max_len] + f"... <truncated len={len(s)}>"


def _num(x: Any) -> float | None:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return None
    return float(x)


def _remote_obj_to_str(obj: Any) -> str:
    """Best-effort conversion of CDP RemoteObject to short string."""
    if not isinstance(obj, dict):
        return _str(obj)
    for k in ("value", "unserializableValue", "description"):
        if k in obj and obj.get(k) is not None:
            return _str(obj.get(k))
    typ = obj.get("type")
    subtype = obj.get("subtype")
    return _str(f"<{typ}{('/' + subtype) if subtype else ''}>")


def header_value(headers: Mapping[str, Any] | None, name: str) -> str | None:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    want = name.strip().lower()
    for k, v in headers.items():
        if str(k).strip().lower() == want:
            s = v if isinstance(v, str) else _str(v)
            return s or None
    return None


def _headers(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): v if isinstance(v, str) else _str(v, max_len=2000) for k, v in raw.items()}


@dataclass(frozen=True, slots=True)
class ResponseInfo:
    status: int
    status_text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content_type: str | None = None
    protocol: str | None = None

    @classmethod
    def from_cdp(cls, resp: dict[str, Any]) -> ResponseInfo:
        headers = _headers(resp.get("headers"))
        try:
            status = int(resp.get("status") or 0)
        except (TypeError, ValueError):
            status = 0
        content_type = header_value(headers, "content-type")
        if content_type is None and isinstance(resp.get("mimeType"), str) and resp.get("mimeType"):
            content_type = resp["mimeType"]
        protocol = resp.get("protocol") if isinstance(resp.get("protocol"), str) else None
        return cls(
            status=status,
            status_text=_str(resp.get("statusText") or "", max_len=200),
            headers=headers,
            content_type=content_type,
            protocol=protocol,
        )


@dataclass(slots=True)
class RequestRecord:
    """One network request. ``pending`` until the first terminal event, then frozen."""

    request_id: str
    url: str
    method: str = "GET"
    started_at: float = 0.0
    started_wall: float = 0.0
    request_headers: dict[str, str] = field(default_factory=dict)
    resource_type: str | None = None
    ended_at: float | None = None
    response: ResponseInfo | None = None
    failure_reason: str | None = None
    encoded_size: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.ended_at is not None

    @property
    def duration_ms(self) -> float | None:
        if self.ended_at is None:
            return None
        return max(0.0, (self.ended_at - self.started_at) * 1000.0)

    @property
    def status(self) -> int | None:
        return self.response.status if self.response is not None else None


@dataclass(slots=True)
class EventCorrelator:
    """Ledger of requests plus bounded console/page-error buffers for one session."""

    max_events: int = 200

    records: dict[str, RequestRecord] = field(default_factory=dict)
    console: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    navigation: list[dict[str, Any]] = field(default_factory=list)
    page_url: str | None = None

    _redirects: dict[str, int] = field(default_factory=dict, repr=False)
    _page_started_at: float | None = field(default=None, repr=False)
    _dom_content_at: float | None = field(default=None, repr=False)
    _load_at: float | None = field(default=None, repr=False)

    def __call__(self, event: dict[str, Any]) -> None:
        self.ingest(event)

    def _push(self, buf: list[dict[str, Any]], item: dict[str, Any]) -> None:
        buf.append(item)
        if len(buf) > self.max_events:
            del buf[: len(buf) - self.max_events]

    # ─────────────────────────────────────────────────────────────────────────
    # Typed handlers
    # ─────────────────────────────────────────────────────────────────────────

    def on_request_issued(
        self,
        request_id: str,
        url: str,
        method: str = "GET",
        *,
        timestamp: float | None = None,
        wall_time: float | None = None,
        headers: dict[str, str] | None = None,
        resource_type: str | None = None,
    ) -> RequestRecord | None:
        if request_id in self.records:
            logger.debug("duplicate request id=%s ignored", request_id)
            return None
        rec = RequestRecord(
            request_id=request_id,
            url=url,
            method=method or "GET",
            started_at=timestamp if timestamp is not None else time.monotonic(),
            started_wall=wall_time if wall_time is not None else time.time(),
            request_headers=dict(headers or {}),
            resource_type=resource_type,
        )
        self.records[request_id] = rec
        return rec

    def on_response_received(
        self,
        request_id: str,
        response: ResponseInfo,
        *,
        timestamp: float | None = None,
    ) -> None:
        rec = self.records.get(request_id)
        if rec is None:
            logger.debug("response for unknown request id=%s dropped", request_id)
            return
        if rec.is_terminal:
            return
        rec.response = response
        rec.ended_at = timestamp if timestamp is not None else time.monotonic()

    def on_request_failed(self, request_id: str, reason: str, *, timestamp: float | None = None) -> None:
        rec = self.records.get(request_id)
        if rec is None:
            logger.debug("failure for unknown request id=%s dropped", request_id)
            return
        if rec.is_terminal:
            return
        rec.failure_reason = reason or "unknown"
        rec.ended_at = timestamp if timestamp is not None else time.monotonic()

    def on_loading_finished(self, request_id: str, encoded_size: float | None = None) -> None:
        rec = self.records.get(request_id)
        if rec is None or encoded_size is None:
            return
        rec.encoded_size = int(encoded_size)

    def on_redirect(self, request_id: str, response: ResponseInfo, *, timestamp: float | None = None) -> None:
        """Close the current hop with its redirect response and move it aside."""
        rec = self.records.pop(request_id, None)
        if rec is None:
            return
        if not rec.is_terminal:
            rec.response = response
            rec.ended_at = timestamp if timestamp is not None else time.monotonic()
        n = self._redirects.get(request_id, 0) + 1
        self._redirects[request_id] = n
        rec.request_id = f"{request_id}:redirect:{n}"
        self.records[rec.request_id] = rec

    def on_console_message(self, level: str, text: str, *, url: str | None = None, source: str = "console") -> None:
        level = "warn" if level == "warning" else (level or "log")
        entry: dict[str, Any] = {"ts": time.time(), "level": level, "text": _str(text, max_len=2000), "source": source}
        if url:
            entry["url"] = url
        self._push(self.console, entry)

    def on_page_error(
        self,
        message: str,
        *,
        url: str | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        err: dict[str, Any] = {"ts": time.time(), "message": _str(message or "Uncaught exception", max_len=2000)}
        if url:
            err["url"] = url
        if line is not None:
            err["line"] = line
        if column is not None:
            err["column"] = column
        self._push(self.errors, err)

    # ─────────────────────────────────────────────────────────────────────────
    # Raw CDP dispatch
    # ─────────────────────────────────────────────────────────────────────────

    def ingest(self, event: dict[str, Any]) -> None:
        """Ingest a raw CDP event dict. Malformed events are ignored."""
        if not isinstance(event, dict):
            return
        method = event.get("method")
        if not isinstance(method, str) or not method:
            return
        params = event.get("params")
        if not isinstance(params, dict):
            params = {}
        ts = _num(params.get("timestamp"))

        if method == "Network.requestWillBeSent":
            request_id = params.get("requestId")
            req = params.get("request")
            if not isinstance(request_id, str) or not isinstance(req, dict):
                return
            redirect = params.get("redirectResponse")
            if isinstance(redirect, dict) and request_id in self.records:
                self.on_redirect(request_id, ResponseInfo.from_cdp(redirect), timestamp=ts)
            rtype = params.get("type") if isinstance(params.get("type"), str) else None
            # Main navigations carry loaderId == requestId.
            if rtype == "Document" and params.get("loaderId") == request_id and redirect is None:
                self._page_started_at = ts
                self._dom_content_at = None
                self._load_at = None
            self.on_request_issued(
                request_id,
                _str(req.get("url") or "", max_len=4000),
                req.get("method") if isinstance(req.get("method"), str) else "GET",
                timestamp=ts,
                wall_time=_num(params.get("wallTime")),
                headers=_headers(req.get("headers")),
                resource_type=rtype,
            )
            return

        if method == "Network.responseReceived":
            request_id = params.get("requestId")
            resp = params.get("response")
            if isinstance(request_id, str) and isinstance(resp, dict):
                self.on_response_received(request_id, ResponseInfo.from_cdp(resp), timestamp=ts)
            return

        if method == "Network.loadingFailed":
            request_id = params.get("requestId")
            if isinstance(request_id, str):
                reason = params.get("errorText") or params.get("blockedReason") or "unknown"
                if params.get("canceled") is True and not params.get("errorText"):
                    reason = "canceled"
                self.on_request_failed(request_id, _str(reason, max_len=300), timestamp=ts)
            return

        if method == "Network.loadingFinished":
            request_id = params.get("requestId")
            if isinstance(request_id, str):
                self.on_loading_finished(request_id, _num(params.get("encodedDataLength")))
            return

        if method == "Runtime.consoleAPICalled":
            level = params.get("type") if isinstance(params.get("type"), str) else "log"
            args = params.get("args")
            text = " ".join(_remote_obj_to_str(a) for a in args[:8]) if isinstance(args, list) else ""
            self.on_console_message(level, text)
            return

        if method == "Log.entryAdded":
            entry = params.get("entry")
            if isinstance(entry, dict):
                url = entry.get("url") if isinstance(entry.get("url"), str) else None
                self.on_console_message(
                    str(entry.get("level") or "info"),
                    str(entry.get("text") or ""),
                    url=url,
                    source=str(entry.get("source") or "log"),
                )
            return

        if method == "Runtime.exceptionThrown":
            details = params.get("exceptionDetails")
            if not isinstance(details, dict):
                details = {}
            msg = details.get("text") or "Uncaught exception"
            exception = details.get("exception")
            if isinstance(exception, dict):
                msg = exception.get("description") or exception.get("value") or msg
            self.on_page_error(
                _str(msg),
                url=details.get("url") if isinstance(details.get("url"), str) else None,
                line=details.get("lineNumber") if isinstance(details.get("lineNumber"), int) else None,
                column=details.get("columnNumber") if isinstance(details.get("columnNumber"), int) else None,
            )
            return

        if method == "Page.domContentEventFired":
            self._dom_content_at = ts
            return

        if method == "Page.loadEventFired":
            self._load_at = ts
            return

        if method == "Page.frameNavigated":
            frame = params.get("frame")
            if isinstance(frame, dict) and not frame.get("parentId"):
                url = frame.get("url")
                if isinstance(url, str) and url:
                    self.page_url = url
                    self._push(self.navigation, {"ts": time.time(), "url": url})
            return

    # ─────────────────────────────────────────────────────────────────────────
    # Read-only views
    # ─────────────────────────────────────────────────────────────────────────

    def snapshot(self) -> list[RequestRecord]:
        """Records in issue order (the ledger itself stays live)."""
        return sorted(self.records.values(), key=lambda r: r.started_at)

    def page_timings(self) -> dict[str, float]:
        """HAR ``pageTimings`` relative to the last main-document request (-1 = unknown)."""
        out = {"onContentLoad": -1.0, "onLoad": -1.0}
        start = self._page_started_at
        if start is None:
            return out
        if self._dom_content_at is not None and self._dom_content_at >= start:
            out["onContentLoad"] = round((self._dom_content_at - start) * 1000.0, 3)
        if self._load_at is not None and self._load_at >= start:
            out["onLoad"] = round((self._load_at - start) * 1000.0, 3)
        return out

    def console_report(self) -> dict[str, Any]:
        return {
            "console": list(self.console),
            "errors": list(self.errors),
            "navigation": list(self.navigation),
            "summary": {
                "consoleErrors": sum(1 for e in self.console if e.get("level") == "error"),
                "consoleWarnings": sum(1 for e in self.console if e.get("level") == "warn"),
                "pageErrors": len(self.errors),
                "lastError": self.errors[-1]["message"] if self.errors else None,
            },
        }


__all__ = ["EventCorrelator", "RequestRecord", "ResponseInfo"]
