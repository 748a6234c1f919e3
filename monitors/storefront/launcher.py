from __future__ import annotations

import contextlib
import json
import logging
import socket
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.error import URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .config import MonitorConfig, expand_path
from .errors import DriverError

logger = logging.getLogger("probe.storefront.launcher")

_USER_AGENT = "storefront-probe"


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str


class BrowserLauncher:
    """Launch (or attach to) a Chrome exposing the DevTools endpoint on ``cdp_port``."""

    def __init__(self, config: MonitorConfig | None = None) -> None:
        self.config = config or MonitorConfig.from_env()
        self.process: subprocess.Popen | None = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.config.cdp_port}"

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        """Return True if the CDP HTTP endpoint responds."""
        try:
            with urlopen(f"{self.base_url}/json/version", timeout=timeout) as resp:
                return resp.status == 200
        except (OSError, TimeoutError, URLError):
            return False

    def _port_available(self, timeout: float = 0.2) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            try:
                return sock.connect_ex(("127.0.0.1", self.config.cdp_port)) != 0
            except OSError:
                return False

    def build_launch_command(self, extra: list[str] | None = None) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.config.cdp_port}",
            f"--user-data-dir={expand_path(self.config.profile_path)}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-dev-shm-usage",
        ]
        if "vendor/chromium" in self.config.binary_path:
            flags.append("--no-sandbox")
        if self.config.headless:
            flags.append("--headless=new")
        else:
            flags.append("--window-size=1280,900")
        flags.extend(self.config.extra_flags)
        if extra:
            flags.extend(extra)
        return [self.config.binary_path, *flags]

    def ensure_running(self, timeout: float = 10.0) -> LaunchResult:
        if self.cdp_ready():
            message = "Attached to existing Chrome on CDP port" if self.config.mode == "attach" else "Chrome already listening on CDP port"
            return LaunchResult([], False, message)

        if self.config.mode == "attach":
            return LaunchResult(
                [],
                False,
                f"Attach mode: no Chrome listening on CDP port {self.config.cdp_port} (start Chrome with --remote-debugging-port)",
            )

        if not self._port_available():
            return LaunchResult([], False, f"Port {self.config.cdp_port} already in use")

        with contextlib.suppress(OSError):
            Path(expand_path(self.config.profile_path)).mkdir(parents=True, exist_ok=True)
        cmd = self.build_launch_command()
        try:
            self.process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            return LaunchResult(cmd, False, str(exc))

        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.cdp_ready():
                logger.info("chrome launched port=%s binary=%s", self.config.cdp_port, self.config.binary_path)
                return LaunchResult(cmd, True, "Chrome launched")
            time.sleep(0.1)
        return LaunchResult(cmd, False, "Chrome launch timed out")

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Best-effort stop of the launcher-owned Chrome process."""
        proc = self.process
        if proc is None:
            return False
        if proc.poll() is not None:
            return True
        with contextlib.suppress(OSError):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
        except subprocess.TimeoutExpired:
            with contextlib.suppress(OSError):
                proc.kill()
        return True

    def _get_json(self, path: str, *, method: str = "GET", timeout: float = 2.0) -> Any:
        req = Request(f"{self.base_url}{path}", headers={"User-Agent": _USER_AGENT}, method=method)
        try:
            with urlopen(req, timeout=timeout) as resp:
                return json.loads(resp.read().decode())
        except (URLError, OSError, ValueError) as exc:
            raise DriverError(f"CDP HTTP {path} failed on port {self.config.cdp_port}: {exc}") from exc

    def cdp_version(self, timeout: float = 0.8) -> dict[str, Any]:
        payload = self._get_json("/json/version", timeout=timeout)
        return payload if isinstance(payload, dict) else {}

    def list_targets(self) -> list[dict[str, Any]]:
        try:
            payload = self._get_json("/json/list", timeout=0.5)
        except DriverError:
            return []
        return [t for t in payload if isinstance(t, dict)] if isinstance(payload, list) else []

    def open_target(self, url: str = "about:blank") -> dict[str, Any]:
        """Open a new page target; returns its ``/json`` descriptor (id, webSocketDebuggerUrl)."""
        target = self._get_json(f"/json/new?{quote(url, safe='')}", method="PUT")
        if not isinstance(target, dict) or not target.get("webSocketDebuggerUrl"):
            raise DriverError("CDP /json/new returned no debuggable page target")
        return target

    def close_target(self, target_id: str) -> None:
        req = Request(f"{self.base_url}/json/close/{target_id}", headers={"User-Agent": _USER_AGENT})
        try:
            with urlopen(req, timeout=1.0):
                pass
        except (URLError, OSError) as exc:
            logger.debug("close target failed id=%s error=%s", target_id, exc)


__all__ = ["BrowserLauncher", "LaunchResult"]
