from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from monitors.storefront.artifacts import DirectoryArtifactSink
from monitors.storefront.config import MonitorConfig
from monitors.storefront.errors import DriverError
from monitors.storefront.journey import JourneyRecorder
from monitors.storefront.thresholds import Severity
from monitors.storefront.verify.signals import ActionOutcome

PAGE = "https://shop.example.com/products/tee"


class DummyConn:
    def __init__(self) -> None:
        self.sinks: list[Any] = []

    def add_event_sink(self, sink: Any) -> None:
        self.sinks.append(sink)

    def remove_event_sink(self, sink: Any) -> None:
        self.sinks = [s for s in self.sinks if s is not sink]

    def emit(self, method: str, params: dict[str, Any]) -> None:
        for sink in list(self.sinks):
            sink({"method": method, "params": params})


class DummySession:
    def __init__(self, vitals: Any = None, *, timeline_error: bool = False) -> None:
        self.conn = DummyConn()
        self.vitals = vitals
        self.timeline_error = timeline_error
        self.enabled: list[str] = []
        self.scripts: list[str] = []

    def enable_domains(self, *domains: str, strict: bool = True) -> None:  # noqa: ARG002
        self.enabled.extend(domains)

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:  # noqa: ARG002
        if method == "PerformanceTimeline.enable" and self.timeline_error:
            raise DriverError("'PerformanceTimeline.enable' wasn't found")
        return {}

    def add_init_script(self, source: str) -> str:
        self.scripts.append(source)
        return "1"

    def is_closed(self) -> bool:
        return False

    def eval_js(self, expression: str, *, timeout: float | None = None) -> Any:  # noqa: ARG002
        return self.vitals

    def get_url(self) -> str:
        return PAGE

    def wait_for_network_idle(self, timeout: float = 5.0, idle: float = 0.5) -> bool:  # noqa: ARG002
        return True


def _config(tmp_path: Path) -> MonitorConfig:
    return MonitorConfig(binary_path="chrome", profile_path=str(tmp_path / "p"), artifact_dir=str(tmp_path / "a"))


def _page_load(conn: DummyConn) -> None:
    conn.emit(
        "Network.requestWillBeSent",
        {
            "requestId": "D1",
            "loaderId": "D1",
            "type": "Document",
            "timestamp": 100.0,
            "wallTime": 1_700_000_000.0,
            "request": {"url": PAGE, "method": "GET", "headers": {}},
        },
    )
    conn.emit(
        "Network.responseReceived",
        {"requestId": "D1", "timestamp": 100.4, "response": {"url": PAGE, "status": 200, "headers": {}}},
    )
    conn.emit(
        "Network.requestWillBeSent",
        {
            "requestId": "R2",
            "loaderId": "D1",
            "type": "Fetch",
            "timestamp": 100.5,
            "wallTime": 1_700_000_000.5,
            "request": {"url": "https://shop.example.com/cart/add.js", "method": "POST", "headers": {}},
        },
    )
    conn.emit(
        "Network.responseReceived",
        {"requestId": "R2", "timestamp": 106.5, "response": {"url": "https://shop.example.com/cart/add.js", "status": 200, "headers": {}}},
    )
    conn.emit(
        "Network.requestWillBeSent",
        {
            "requestId": "R3",
            "loaderId": "D1",
            "type": "Script",
            "timestamp": 100.6,
            "wallTime": 1_700_000_000.6,
            "request": {"url": "https://cdn.example.com/app.js", "method": "GET", "headers": {}},
        },
    )
    conn.emit("Network.loadingFailed", {"requestId": "R3", "timestamp": 100.7, "errorText": "net::ERR_BLOCKED_BY_CLIENT"})
    conn.emit(
        "Runtime.consoleAPICalled",
        {"type": "error", "args": [{"type": "string", "value": "boom"}], "timestamp": 101.0},
    )


def test_journey_attaches_every_artifact(tmp_path: Path) -> None:
    session = DummySession({"lcp": 1800, "cls": 0.01, "inp": None})
    sink = DirectoryArtifactSink(tmp_path / "out")
    recorder = JourneyRecorder(session, sink, _config(tmp_path), name="pdp")
    recorder.start()
    assert session.enabled[:3] == ["Page", "Runtime", "Network"]
    assert len(session.scripts) == 1

    _page_load(session.conn)
    recorder.record_outcome("add_to_cart", ActionOutcome(verdict=True, action="add_to_cart"))
    report = recorder.finish()

    assert report.passed is True
    assert report.url == PAGE
    assert report.summary.total_requests == 3
    assert report.summary.total_failed == 1
    assert report.summary.total_slow == 1
    assert len(report.har.entries) == 3
    assert report.vitals.source == "page"
    assert report.validation.passed is True
    assert any("slow request" in w for w in report.warnings)

    names = sorted(Path(p).name for p in report.artifacts)
    assert names == sorted(
        [
            "pdp-network-summary.json",
            "pdp-network.har",
            "pdp-console-logs.json",
            "pdp-web-vitals.json",
            "pdp-action-outcomes.json",
        ]
    )
    har = json.loads((tmp_path / "out" / "pdp-network.har").read_text(encoding="utf-8"))
    assert har["log"]["version"] == "1.2"
    console = json.loads((tmp_path / "out" / "pdp-console-logs.json").read_text(encoding="utf-8"))
    assert console["summary"]["consoleErrors"] == 1

    # Collectors are detached once the journey is compiled.
    assert session.conn.sinks == []


def test_enforce_fails_on_slow_requests_and_vitals(tmp_path: Path) -> None:
    session = DummySession({"lcp": 5200, "cls": 0.0, "inp": None})
    recorder = JourneyRecorder(session, DirectoryArtifactSink(tmp_path), _config(tmp_path), severity=Severity.ENFORCE)
    recorder.start()
    _page_load(session.conn)
    report = recorder.finish()
    assert report.passed is False
    assert "LCP 5200ms > 4000ms" in report.warnings


def test_advisory_only_fails_on_unconfirmed_action(tmp_path: Path) -> None:
    session = DummySession({"lcp": 5200, "cls": 0.0, "inp": None})
    recorder = JourneyRecorder(session, DirectoryArtifactSink(tmp_path), _config(tmp_path))
    recorder.start()
    _page_load(session.conn)
    recorder.record_outcome("add_to_cart", ActionOutcome(verdict=False, action="add_to_cart"))
    report = recorder.finish()
    assert report.passed is False
    assert report.to_dict()["actions"]["add_to_cart"]["verdict"] is False


def test_missing_page_vitals_fall_back_to_timeline(tmp_path: Path) -> None:
    session = DummySession(None, timeline_error=True)
    recorder = JourneyRecorder(session, DirectoryArtifactSink(tmp_path), _config(tmp_path))
    recorder.start()
    session.conn.emit("Page.frameNavigated", {"frame": {"id": "F1", "url": PAGE}})
    session.conn.emit(
        "PerformanceTimeline.timelineEventAdded",
        {"event": {"type": "layout-shift", "layoutShiftDetails": {"value": 0.04, "hadRecentInput": False}}},
    )
    report = recorder.finish()
    assert report.vitals.source == "timeline"
    assert report.vitals.cumulative_layout_shift == 0.04
    assert report.passed is True
    assert report.summary.total_requests == 0


def test_journeys_sharing_a_directory_keep_separate_files(tmp_path: Path) -> None:
    sink = DirectoryArtifactSink(tmp_path / "shared")
    for name in ("pdp-desktop", "pdp-mobile"):
        session = DummySession({"lcp": 1800, "cls": 0.0, "inp": None})
        recorder = JourneyRecorder(session, sink, _config(tmp_path), name=name)
        recorder.start()
        _page_load(session.conn)
        recorder.finish()
    assert (tmp_path / "shared" / "pdp-desktop-network.har").exists()
    assert (tmp_path / "shared" / "pdp-mobile-network.har").exists()
    assert len(sink.attached) == 10


def test_failing_sink_does_not_abort_the_journey(tmp_path: Path) -> None:
    class RemoteSink:
        def attach(self, name: str, body: bytes, mime_type: str, file_name: str | None = None) -> Any:
            raise RuntimeError("report server 500")

    session = DummySession({"lcp": 1800, "cls": 0.0, "inp": None})
    recorder = JourneyRecorder(session, RemoteSink(), _config(tmp_path))
    recorder.start()
    _page_load(session.conn)
    report = recorder.finish()
    assert report.passed is True
    assert report.artifacts == []
    assert session.conn.sinks == []
