"""Terse network verdict compiled from the request ledger."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from .telemetry import RequestRecord
from .thresholds import SLOW_REQUEST_MS


def _url_host(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def _status_bucket(status: int | None) -> str:
    if status is None:
        return "failed"
    if 100 <= status < 600:
        return f"{status // 100}xx"
    return "other"


def _top(counter: Counter[str], n: int) -> list[dict[str, Any]]:
    return [{"key": k, "count": int(v)} for k, v in counter.most_common(n) if k and v]


@dataclass(frozen=True)
class NetworkSummary:
    failed: tuple[dict[str, Any], ...] = ()
    slow: tuple[dict[str, Any], ...] = ()
    errors: tuple[dict[str, Any], ...] = ()
    total_requests: int = 0
    total_ok: int = 0
    total_pending: int = 0
    breakdown: dict[str, Any] = field(default_factory=dict)

    @property
    def total_failed(self) -> int:
        return len(self.failed)

    @property
    def total_slow(self) -> int:
        return len(self.slow)

    @property
    def total_errors(self) -> int:
        return len(self.errors)

    @property
    def clean(self) -> bool:
        return not self.failed and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "failedRequests": list(self.failed),
            "slowRequests": list(self.slow),
            "errorResponses": list(self.errors),
            "totalRequests": self.total_requests,
            "totalFailed": self.total_failed,
            "totalSlow": self.total_slow,
            "totalErrors": self.total_errors,
            "totalOk": self.total_ok,
            "totalPending": self.total_pending,
            "breakdown": self.breakdown,
        }


def compile_network_summary(
    records: Iterable[RequestRecord],
    *,
    slow_threshold_ms: float = SLOW_REQUEST_MS,
) -> NetworkSummary:
    """Partition terminal records into failed / error / ok, flagging slow ones on the side.

    Pending records are counted separately and never enter the partition, so
    ``total_requests == total_failed + total_errors + total_ok`` always holds.
    """
    failed: list[dict[str, Any]] = []
    slow: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    ok = 0
    pending = 0
    buckets: Counter[str] = Counter()
    hosts: Counter[str] = Counter()
    reasons: Counter[str] = Counter()

    for rec in records:
        if not rec.is_terminal:
            pending += 1
            continue
        duration = rec.duration_ms
        status = rec.status
        buckets[_status_bucket(status)] += 1
        host = _url_host(rec.url)
        if host:
            hosts[host] += 1

        if rec.failure_reason is not None:
            failed.append({"url": rec.url, "method": rec.method, "failure": rec.failure_reason})
            reasons[rec.failure_reason] += 1
        elif status is not None and status >= 400:
            errors.append(
                {
                    "url": rec.url,
                    "method": rec.method,
                    "status": status,
                    "statusText": rec.response.status_text if rec.response else "",
                }
            )
        else:
            ok += 1

        if duration is not None and duration > slow_threshold_ms:
            slow.append(
                {
                    "url": rec.url,
                    "method": rec.method,
                    "duration": round(duration, 1),
                    **({"status": status} if status is not None else {}),
                }
            )

    return NetworkSummary(
        failed=tuple(failed),
        slow=tuple(slow),
        errors=tuple(errors),
        total_requests=len(failed) + len(errors) + ok,
        total_ok=ok,
        total_pending=pending,
        breakdown={
            "status": dict(buckets),
            "topHosts": _top(hosts, 6),
            "topFailures": _top(reasons, 5),
        },
    )


__all__ = ["NetworkSummary", "compile_network_summary"]
