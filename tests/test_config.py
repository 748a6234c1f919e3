from __future__ import annotations

import pytest

from monitors.storefront.config import MonitorConfig
from monitors.storefront.thresholds import SLOW_REQUEST_MS, Severity, get_thresholds, normalize_priority

_ENV = (
    "PROBE_BROWSER_BINARY",
    "PROBE_BROWSER_PORT",
    "PROBE_BROWSER_MODE",
    "PROBE_HEADLESS",
    "PROBE_BROWSER_FLAGS",
    "PROBE_SLOW_REQUEST_MS",
    "PROBE_IDLE_TIMEOUT",
    "PROBE_VITALS_PRIORITY",
    "PROBE_SEVERITY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults_are_advisory_p0() -> None:
    cfg = MonitorConfig.from_env()
    assert cfg.cdp_port == 9222
    assert cfg.mode == "launch"
    assert cfg.headless is True
    assert cfg.slow_request_ms == SLOW_REQUEST_MS
    assert cfg.vitals_priority == "P0"
    assert cfg.severity is Severity.ADVISORY


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROBE_BROWSER_BINARY", "/opt/chrome/chrome")
    monkeypatch.setenv("PROBE_BROWSER_PORT", "9333")
    monkeypatch.setenv("PROBE_BROWSER_MODE", "connect")
    monkeypatch.setenv("PROBE_HEADLESS", "0")
    monkeypatch.setenv("PROBE_BROWSER_FLAGS", "--disable-gpu, --mute-audio")
    monkeypatch.setenv("PROBE_SLOW_REQUEST_MS", "2500")
    monkeypatch.setenv("PROBE_IDLE_TIMEOUT", "60")
    monkeypatch.setenv("PROBE_VITALS_PRIORITY", "p2")
    monkeypatch.setenv("PROBE_SEVERITY", "enforce")

    cfg = MonitorConfig.from_env()
    assert cfg.binary_path == "/opt/chrome/chrome"
    assert cfg.cdp_port == 9333
    assert cfg.mode == "attach"
    assert cfg.headless is False
    assert cfg.extra_flags == ["--disable-gpu", "--mute-audio"]
    assert cfg.slow_request_ms == 2500
    assert cfg.idle_timeout == 10.0
    assert cfg.vitals_priority == "P2"
    assert cfg.severity is Severity.ENFORCE


def test_bad_numbers_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROBE_BROWSER_PORT", "abc")
    monkeypatch.setenv("PROBE_SLOW_REQUEST_MS", "-5")
    cfg = MonitorConfig.from_env()
    assert cfg.cdp_port == 9222
    assert cfg.slow_request_ms == 1


def test_priority_and_severity_parsing() -> None:
    assert normalize_priority("p1") == "P1"
    assert normalize_priority("P9") == "P0"
    assert get_thresholds(None).lcp == 4000
    assert get_thresholds("P1").cls == 0.15
    assert Severity.parse("STRICT") is Severity.ENFORCE
    assert Severity.parse(None) is Severity.ADVISORY
