"""Device profiles and the randomized-timing helpers used by journeys.

Profiles are applied through CDP emulation on an already-open tab, so the same
browser process can run desktop and mobile journeys back to back.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any

from .errors import MonitorError

logger = logging.getLogger("probe.storefront.profiles")


@dataclass(frozen=True)
class DeviceProfile:
    name: str
    width: int
    height: int
    device_scale_factor: float
    mobile: bool
    touch: bool
    user_agent: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "viewport": {"width": self.width, "height": self.height},
            "deviceScaleFactor": self.device_scale_factor,
            "mobile": self.mobile,
            "touch": self.touch,
        }


DEVICE_PROFILES: dict[str, DeviceProfile] = {
    "desktop-chromium": DeviceProfile(
        name="desktop-chromium",
        width=1280,
        height=720,
        device_scale_factor=1,
        mobile=False,
        touch=False,
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
    ),
    "mobile-iphone": DeviceProfile(
        name="mobile-iphone",
        width=390,
        height=664,
        device_scale_factor=3,
        mobile=True,
        touch=True,
        user_agent=(
            "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
        ),
    ),
    "mobile-android": DeviceProfile(
        name="mobile-android",
        width=412,
        height=839,
        device_scale_factor=2.625,
        mobile=True,
        touch=True,
        user_agent=(
            "Mozilla/5.0 (Linux; Android 14; Pixel 7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
        ),
    ),
}

LOCALES: list[str] = [
    "en-US,en;q=0.9",
    "en-GB,en;q=0.9",
    "en-CA,en;q=0.9",
    "en-AU,en;q=0.9",
    "ja-JP,ja;q=0.9",
    "de-DE,de;q=0.9",
    "fr-FR,fr;q=0.9",
    "es-ES,es;q=0.9",
]


def get_profile(name: str | None) -> DeviceProfile:
    key = (name or "desktop-chromium").strip().lower()
    profile = DEVICE_PROFILES.get(key)
    if profile is None:
        raise MonitorError(
            component="profiles",
            action="get_profile",
            reason=f"unknown device profile {name!r}",
            suggestion="Use one of: " + ", ".join(sorted(DEVICE_PROFILES)),
        )
    return profile


def pick_locale(rng: random.Random | None = None) -> str:
    return (rng or random).choice(LOCALES)


def jitter_ms(max_ms: int = 3000, rng: random.Random | None = None) -> int:
    """Random start delay in [0, max_ms) so runs do not hit the site on a fixed beat."""
    if max_ms <= 0:
        return 0
    return int((rng or random).random() * max_ms)


def apply_profile(session: Any, profile: DeviceProfile, *, locale: str | None = None) -> None:
    """Emulate viewport, touch and user agent (with Accept-Language) on the session's tab."""
    session.send(
        "Emulation.setDeviceMetricsOverride",
        {
            "width": profile.width,
            "height": profile.height,
            "deviceScaleFactor": profile.device_scale_factor,
            "mobile": profile.mobile,
        },
    )
    session.send(
        "Emulation.setTouchEmulationEnabled",
        {"enabled": profile.touch, **({"maxTouchPoints": 5} if profile.touch else {})},
    )
    ua: dict[str, Any] = {"userAgent": profile.user_agent}
    if locale:
        ua["acceptLanguage"] = locale
    session.send("Network.setUserAgentOverride", ua)
    logger.info("device profile applied profile=%s locale=%s", profile.name, locale or "-")


__all__ = [
    "DEVICE_PROFILES",
    "DeviceProfile",
    "LOCALES",
    "apply_profile",
    "get_profile",
    "jitter_ms",
    "pick_locale",
]
