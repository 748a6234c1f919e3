from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .thresholds import SLOW_REQUEST_MS, Severity, normalize_priority


def _get_local_chromium_path() -> str:
    """Get path to locally installed Chromium in vendor directory."""
    config_dir = Path(__file__).resolve().parent
    project_root = config_dir.parent.parent
    local_chrome = project_root / "vendor" / "chromium" / "chrome"
    return str(local_chrome)


DEFAULT_BINARY_CANDIDATES: list[str] = [
    _get_local_chromium_path(),
    # IMPORTANT: Avoid snap versions - they ignore --user-data-dir!
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, "") or default)
    except ValueError:
        return float(default)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, "") or default)
    except ValueError:
        return int(default)


@dataclass
class MonitorConfig:
    binary_path: str
    profile_path: str
    artifact_dir: str
    cdp_port: int = 9222
    mode: str = "launch"
    headless: bool = True
    extra_flags: list[str] = field(default_factory=list)
    cdp_timeout: float = 10.0
    slow_request_ms: int = SLOW_REQUEST_MS
    idle_timeout: float = 5.0
    vitals_priority: str = "P0"
    severity: Severity = Severity.ADVISORY

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        mode = (raw or "").strip().lower()
        if mode in {"attach", "connect", "external"}:
            return "attach"
        return "launch"

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("PROBE_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            # vendor/chromium/chrome may exist without +x.
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        return "google-chrome"

    @classmethod
    def from_env(cls) -> MonitorConfig:
        flags_raw = os.environ.get("PROBE_BROWSER_FLAGS", "")
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=expand_path(os.environ.get("PROBE_BROWSER_PROFILE", "~/.cache/storefront-probe/profile")),
            artifact_dir=expand_path(os.environ.get("PROBE_ARTIFACT_DIR", "test-results/artifacts")),
            cdp_port=_int_env("PROBE_BROWSER_PORT", 9222),
            mode=cls.normalize_mode(os.environ.get("PROBE_BROWSER_MODE")),
            headless=os.environ.get("PROBE_HEADLESS", "1") != "0",
            extra_flags=[flag.strip() for flag in flags_raw.split(",") if flag.strip()],
            cdp_timeout=_float_env("PROBE_CDP_TIMEOUT", 10.0),
            slow_request_ms=max(1, _int_env("PROBE_SLOW_REQUEST_MS", SLOW_REQUEST_MS)),
            idle_timeout=max(0.5, min(_float_env("PROBE_IDLE_TIMEOUT", 5.0), 10.0)),
            vitals_priority=normalize_priority(os.environ.get("PROBE_VITALS_PRIORITY")),
            severity=Severity.parse(os.environ.get("PROBE_SEVERITY")),
        )
