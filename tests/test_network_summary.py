from __future__ import annotations

from monitors.storefront.network_summary import compile_network_summary
from monitors.storefront.telemetry import EventCorrelator, ResponseInfo


def _ledger() -> EventCorrelator:
    c = EventCorrelator()
    # ok, fast
    c.on_request_issued("ok1", "https://shop.example.com/", timestamp=0.0)
    c.on_response_received("ok1", ResponseInfo(status=200), timestamp=0.2)
    # ok, slow
    c.on_request_issued("ok2", "https://cdn.example.com/hero.jpg", timestamp=0.0)
    c.on_response_received("ok2", ResponseInfo(status=200), timestamp=4.5)
    # error, slow
    c.on_request_issued("err1", "https://shop.example.com/api/cart", "POST", timestamp=1.0)
    c.on_response_received("err1", ResponseInfo(status=503, status_text="Service Unavailable"), timestamp=6.0)
    # error, fast
    c.on_request_issued("err2", "https://shop.example.com/missing.css", timestamp=1.0)
    c.on_response_received("err2", ResponseInfo(status=404, status_text="Not Found"), timestamp=1.1)
    # failed
    c.on_request_issued("f1", "https://tracker.example.net/p.gif", timestamp=1.0)
    c.on_request_failed("f1", "net::ERR_BLOCKED_BY_CLIENT", timestamp=1.01)
    # pending
    c.on_request_issued("p1", "https://shop.example.com/api/recs", timestamp=2.0)
    return c


def test_partition_and_count_identity() -> None:
    s = compile_network_summary(_ledger().snapshot())

    assert s.total_failed == 1
    assert s.total_errors == 2
    assert s.total_ok == 2
    assert s.total_pending == 1
    assert s.total_requests == 5
    assert s.total_requests == s.total_failed + s.total_errors + s.total_ok


def test_slow_is_orthogonal_to_outcome() -> None:
    s = compile_network_summary(_ledger().snapshot(), slow_threshold_ms=4000)
    slow_urls = {e["url"] for e in s.slow}
    assert slow_urls == {"https://cdn.example.com/hero.jpg", "https://shop.example.com/api/cart"}
    assert any(e["url"] == "https://shop.example.com/api/cart" for e in s.errors)


def test_threshold_is_strictly_greater() -> None:
    c = EventCorrelator()
    c.on_request_issued("a", "https://shop.example.com/a", timestamp=0.0)
    c.on_response_received("a", ResponseInfo(status=200), timestamp=4.0)
    assert compile_network_summary(c.snapshot(), slow_threshold_ms=4000).total_slow == 0


def test_to_dict_shape_and_breakdown() -> None:
    d = compile_network_summary(_ledger().snapshot()).to_dict()
    assert d["totalRequests"] == 5
    assert d["totalPending"] == 1
    assert d["failedRequests"][0]["failure"] == "net::ERR_BLOCKED_BY_CLIENT"
    assert {e["status"] for e in d["errorResponses"]} == {503, 404}
    assert d["breakdown"]["status"]["2xx"] == 2
    assert d["breakdown"]["topHosts"][0] == {"key": "shop.example.com", "count": 3}


def test_empty_ledger_is_clean() -> None:
    s = compile_network_summary([])
    assert s.clean
    assert s.total_requests == 0
