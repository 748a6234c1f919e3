"""One journey run: wire the collectors to a session, then compile and attach evidence.

Typical use::

    recorder = JourneyRecorder(session, sink, config, name="pdp_add_to_cart")
    recorder.start()                      # before the first navigation
    session.navigate(url)
    recorder.record_outcome("add_to_cart", verify_action(...))
    report = recorder.finish()
    assert report.passed, report.to_dict()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .artifacts import ArtifactSink, attach_best_effort, attach_json_best_effort
from .config import MonitorConfig
from .errors import DriverError
from .har import HarArchive, compile_har
from .network_summary import NetworkSummary, compile_network_summary
from .telemetry import EventCorrelator
from .thresholds import Severity, get_thresholds, normalize_priority
from .verify.signals import ActionOutcome
from .vitals import (
    VitalsAccumulator,
    VitalsCollector,
    VitalsSnapshot,
    VitalsValidation,
    read_snapshot_best_effort,
    validate,
)

logger = logging.getLogger("probe.storefront.journey")

_TIMELINE_EVENTS = ["largest-contentful-paint", "layout-shift"]


@dataclass
class JourneyReport:
    name: str
    url: str
    passed: bool
    summary: NetworkSummary
    har: HarArchive
    vitals: VitalsSnapshot
    validation: VitalsValidation
    outcomes: dict[str, ActionOutcome] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    console: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "passed": self.passed,
            "network": self.summary.to_dict(),
            "harEntries": len(self.har.entries),
            "vitals": self.vitals.to_dict(),
            "vitalsValidation": self.validation.to_dict(),
            "actions": {k: v.to_dict() for k, v in self.outcomes.items()},
            "console": self.console.get("summary", {}),
            "warnings": list(self.warnings),
            "artifacts": list(self.artifacts),
        }


class JourneyRecorder:
    """Owns the per-session collectors; nothing here outlives one journey."""

    def __init__(
        self,
        session: Any,
        sink: ArtifactSink,
        config: MonitorConfig | None = None,
        *,
        name: str = "journey",
        priority: str | None = None,
        severity: Severity | None = None,
    ) -> None:
        self.session = session
        self.sink = sink
        self.config = config or MonitorConfig.from_env()
        self.name = name
        self.priority = normalize_priority(priority or self.config.vitals_priority)
        self.severity = severity or self.config.severity
        self.correlator = EventCorrelator()
        self.accumulator = VitalsAccumulator()
        self.collector = VitalsCollector()
        self.outcomes: dict[str, ActionOutcome] = {}
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        conn = self.session.conn
        conn.add_event_sink(self.correlator)
        conn.add_event_sink(self.accumulator)
        self.session.enable_domains("Page", "Runtime", "Network")
        self.session.enable_domains("Log", strict=False)
        try:
            self.session.send("PerformanceTimeline.enable", {"eventTypes": _TIMELINE_EVENTS})
        except DriverError as exc:
            logger.warning("performance timeline unavailable error=%s", exc)
        self.collector.install(self.session)
        self._started = True
        logger.info("journey started name=%s priority=%s severity=%s", self.name, self.priority, self.severity.value)

    def record_outcome(self, name: str, outcome: ActionOutcome) -> ActionOutcome:
        self.outcomes[name] = outcome
        return outcome

    def _current_url(self) -> str:
        try:
            return str(self.session.get_url() or "")
        except DriverError:
            return ""

    def _read_vitals(self) -> VitalsSnapshot:
        snap = read_snapshot_best_effort(self.session)
        if snap is None or snap.source == "missing":
            logger.info("in-page vitals unavailable, using timeline events name=%s", self.name)
            return self.accumulator.snapshot()
        return snap

    def finish(self, page_url: str | None = None) -> JourneyReport:
        """Compile and attach every artifact. Only the verdict can fail the journey."""
        try:
            idle = self.session.wait_for_network_idle(timeout=self.config.idle_timeout, idle=0.5)
            if not idle:
                logger.info("network not idle after %.1fs, compiling partial evidence", self.config.idle_timeout)
        except DriverError as exc:
            logger.warning("network idle wait failed error=%s", exc)

        records = self.correlator.snapshot()
        url = page_url or self.correlator.page_url or self._current_url()
        summary = compile_network_summary(records, slow_threshold_ms=self.config.slow_request_ms)
        har = compile_har(records, url, page_timings=self.correlator.page_timings())
        vitals = self._read_vitals()
        thresholds = get_thresholds(self.priority)
        validation = validate(vitals, thresholds)
        console = self.correlator.console_report()

        warnings: list[str] = []
        if summary.total_failed:
            warnings.append(f"{summary.total_failed} failed request(s)")
        if summary.total_errors:
            warnings.append(f"{summary.total_errors} error response(s)")
        if summary.total_slow:
            warnings.append(f"{summary.total_slow} slow request(s) > {self.config.slow_request_ms}ms")
        warnings.extend(validation.failures)

        unconfirmed = [k for k, v in self.outcomes.items() if not v.verdict]
        passed = not unconfirmed
        if self.severity is Severity.ENFORCE and (summary.total_slow or not validation.passed):
            passed = False

        conn = self.session.conn
        conn.remove_event_sink(self.correlator)
        conn.remove_event_sink(self.accumulator)

        # Journeys sharing one artifact directory must not overwrite each other.
        prefix = f"{self.name}-"
        artifacts: list[str] = []
        for ref in (
            attach_json_best_effort(self.sink, "network-summary", summary.to_dict(), f"{prefix}network-summary.json"),
            attach_best_effort(
                self.sink, "network-har", har.to_json().encode("utf-8"), "application/json", f"{prefix}network.har"
            ),
            attach_json_best_effort(self.sink, "console-logs", console, f"{prefix}console-logs.json"),
            attach_json_best_effort(
                self.sink,
                "web-vitals",
                {
                    "priority": self.priority,
                    "thresholds": {"lcp": thresholds.lcp, "cls": thresholds.cls, "inp": thresholds.inp},
                    "snapshot": vitals.to_dict(),
                    "validation": validation.to_dict(),
                },
                f"{prefix}web-vitals.json",
            ),
            attach_json_best_effort(
                self.sink,
                "action-outcomes",
                {k: v.to_dict() for k, v in self.outcomes.items()},
                f"{prefix}action-outcomes.json",
            ),
        ):
            if ref is not None:
                artifacts.append(ref.path)

        for w in warnings:
            logger.warning("journey=%s url=%s %s", self.name, url, w)
        if unconfirmed:
            logger.warning("journey=%s unconfirmed actions=%s", self.name, ",".join(unconfirmed))

        return JourneyReport(
            name=self.name,
            url=url,
            passed=passed,
            summary=summary,
            har=har,
            vitals=vitals,
            validation=validation,
            outcomes=dict(self.outcomes),
            warnings=warnings,
            artifacts=artifacts,
            console=console,
        )


__all__ = ["JourneyRecorder", "JourneyReport"]
