"""
storefront-probe: run a smoke journey against one storefront URL.

Opens a tab over CDP, applies a device profile, records network/console/vitals
evidence while the page loads, dismisses the region popup and prints the JSON
report. Exit status is 0 when the journey passed, 1 otherwise.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any

from .artifacts import DirectoryArtifactSink
from .browser_session import BrowserSession
from .config import MonitorConfig, expand_path
from .errors import DriverError, MonitorError
from .journey import JourneyRecorder, JourneyReport
from .launcher import BrowserLauncher
from .profiles import DEVICE_PROFILES, apply_profile, get_profile, jitter_ms, pick_locale
from .session_cdp import CdpConnection
from .thresholds import VITALS_THRESHOLDS, Severity
from .verify.overlay import wait_and_dismiss_overlay
from .verify.presets import overlay_from_cli

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("probe.storefront")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="storefront-probe", description="Synthetic storefront smoke journey")
    p.add_argument("--url", required=True, help="Page to load")
    p.add_argument("--device", default="desktop-chromium", choices=sorted(DEVICE_PROFILES))
    p.add_argument("--locale", default=None, help="Accept-Language value; 'random' picks one")
    p.add_argument("--priority", default=None, choices=sorted(VITALS_THRESHOLDS), help="Vitals threshold preset")
    p.add_argument("--severity", default=None, choices=[s.value for s in Severity])
    p.add_argument("--out", default=None, help="Artifact directory (default: PROBE_ARTIFACT_DIR)")
    p.add_argument("--overlay-selector", default=None, help="Selector of the popup to dismiss")
    p.add_argument("--close-selector", action="append", default=None, help="Popup close control (repeatable)")
    p.add_argument("--jitter-ms", type=int, default=0, help="Random start delay ceiling")
    p.add_argument("--name", default="smoke", help="Journey name used in logs and artifacts")
    return p


def _config_from_args(args: argparse.Namespace) -> MonitorConfig:
    config = MonitorConfig.from_env()
    if args.out:
        config.artifact_dir = expand_path(args.out)
    if args.priority:
        config.vitals_priority = args.priority
    if args.severity:
        config.severity = Severity.parse(args.severity)
    return config


def run_smoke(args: argparse.Namespace, config: MonitorConfig) -> JourneyReport:
    delay = jitter_ms(args.jitter_ms)
    if delay:
        logger.info("jitter delay=%dms", delay)
        time.sleep(delay / 1000.0)

    launcher = BrowserLauncher(config)
    launched = launcher.ensure_running(timeout=max(5.0, config.cdp_timeout))
    logger.info("browser %s", launched.message)
    if not launcher.cdp_ready():
        raise MonitorError(
            component="launcher",
            action="ensure_running",
            reason=launched.message,
            suggestion="Set PROBE_BROWSER_BINARY or start Chrome with --remote-debugging-port",
            details={"port": config.cdp_port, "mode": config.mode},
        )
    try:
        logger.info("browser version=%s", launcher.cdp_version().get("Browser", "?"))
    except DriverError as exc:
        logger.warning("browser version unavailable error=%s", exc)

    target = launcher.open_target("about:blank")
    locale = pick_locale() if args.locale == "random" else args.locale
    sink = DirectoryArtifactSink(config.artifact_dir)
    try:
        conn = CdpConnection(str(target["webSocketDebuggerUrl"]), timeout=config.cdp_timeout)
        with BrowserSession(conn, str(target.get("id") or ""), "about:blank") as session:
            recorder = JourneyRecorder(session, sink, config, name=args.name)
            recorder.start()
            apply_profile(session, get_profile(args.device), locale=locale)
            session.navigate(args.url, timeout=30.0)
            overlay = overlay_from_cli(args.overlay_selector, args.close_selector)
            if not wait_and_dismiss_overlay(session, overlay):
                logger.warning("overlay not dismissed url=%s, continuing", args.url)
            return recorder.finish()
    finally:
        launcher.close_target(str(target.get("id") or ""))
        if launched.started:
            launcher.stop()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = _config_from_args(args)
    try:
        report = run_smoke(args, config)
    except MonitorError as e:
        logger.error("journey aborted component=%s reason=%s", e.component, e.reason)
        print(json.dumps(e.to_dict(), ensure_ascii=False, indent=2))
        return 1
    except DriverError as e:
        logger.error("journey aborted driver error: %s", e)
        out: dict[str, Any] = {"error": True, "component": "driver", "reason": str(e)}
        print(json.dumps(out, ensure_ascii=False, indent=2))
        return 1
    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
