"""HAR 1.2 export of the request ledger.

Only terminal records become entries. Timings the ledger never measured
(``blocked``, ``dns``, ``connect``, ``ssl``) are written as ``-1`` as HAR
prescribes for "not available"; the whole duration is attributed to ``wait``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from . import __version__
from .telemetry import RequestRecord, header_value

HAR_VERSION = "1.2"
PAGE_ID = "page_1"

_PROTOCOLS = {
    "http/0.9": "HTTP/0.9",
    "http/1.0": "HTTP/1.0",
    "http/1.1": "HTTP/1.1",
    "h2": "HTTP/2",
    "h2c": "HTTP/2",
    "h3": "HTTP/3",
    "quic": "HTTP/3",
}


def _iso(epoch_seconds: float) -> str:
    dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _pairs(headers: dict[str, str]) -> list[dict[str, str]]:
    return [{"name": k, "value": v} for k, v in headers.items()]


def _query_string(url: str) -> list[dict[str, str]]:
    try:
        query = urlsplit(url).query
    except ValueError:
        return []
    return [{"name": k, "value": v} for k, v in parse_qsl(query, keep_blank_values=True)]


def _http_version(protocol: str | None) -> str:
    if not protocol:
        return "HTTP/1.1"
    return _PROTOCOLS.get(protocol.strip().lower(), protocol)


def _entry(rec: RequestRecord) -> dict[str, Any]:
    duration = rec.duration_ms or 0.0
    resp = rec.response
    http_version = _http_version(resp.protocol if resp else None)
    if resp is not None:
        redirect = header_value(resp.headers, "location") if 300 <= resp.status < 400 else None
        response: dict[str, Any] = {
            "status": resp.status,
            "statusText": resp.status_text,
            "httpVersion": http_version,
            "headers": _pairs(resp.headers),
            "cookies": [],
            "content": {
                "size": rec.encoded_size if rec.encoded_size is not None else -1,
                "mimeType": resp.content_type or "application/octet-stream",
            },
            "redirectURL": redirect or "",
            "headersSize": -1,
            "bodySize": -1,
        }
    else:
        # Failed before any response: HAR has no failure slot, status 0 is the convention.
        response = {
            "status": 0,
            "statusText": "",
            "httpVersion": http_version,
            "headers": [],
            "cookies": [],
            "content": {"size": 0, "mimeType": "x-unknown"},
            "redirectURL": "",
            "headersSize": -1,
            "bodySize": -1,
            "_error": rec.failure_reason,
        }
    return {
        "pageref": PAGE_ID,
        "startedDateTime": _iso(rec.started_wall),
        "time": round(duration, 3),
        "request": {
            "method": rec.method,
            "url": rec.url,
            "httpVersion": http_version,
            "headers": _pairs(rec.request_headers),
            "queryString": _query_string(rec.url),
            "cookies": [],
            "headersSize": -1,
            "bodySize": -1,
        },
        "response": response,
        "cache": {},
        "timings": {
            "blocked": -1,
            "dns": -1,
            "connect": -1,
            "ssl": -1,
            "send": 0,
            "wait": round(duration, 3),
            "receive": 0,
        },
        **({"_resourceType": rec.resource_type} if rec.resource_type else {}),
    }


@dataclass(frozen=True)
class HarArchive:
    log: dict[str, Any]

    @property
    def entries(self) -> list[dict[str, Any]]:
        return self.log.get("entries", [])

    def to_dict(self) -> dict[str, Any]:
        return {"log": self.log}

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def compile_har(
    records: Iterable[RequestRecord],
    page_url: str,
    *,
    page_title: str | None = None,
    page_timings: dict[str, float] | None = None,
) -> HarArchive:
    """Build a HAR archive from the terminal records of a ledger snapshot."""
    terminal = sorted((r for r in records if r.is_terminal), key=lambda r: r.started_at)
    entries = [_entry(r) for r in terminal]
    started = min((r.started_wall for r in terminal), default=None)
    if started is None:
        started = datetime.now(tz=timezone.utc).timestamp()
    timings = {"onContentLoad": -1, "onLoad": -1}
    if page_timings:
        timings.update({k: v for k, v in page_timings.items() if k in timings})
    log = {
        "version": HAR_VERSION,
        "creator": {"name": "storefront-probe", "version": __version__},
        "pages": [
            {
                "startedDateTime": _iso(started),
                "id": PAGE_ID,
                "title": page_title or page_url,
                "pageTimings": timings,
            }
        ],
        "entries": entries,
    }
    return HarArchive(log=log)


__all__ = ["HarArchive", "compile_har"]
