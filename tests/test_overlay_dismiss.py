from __future__ import annotations

import time

import pytest

from monitors.storefront.errors import DriverError, SessionClosed
from monitors.storefront.verify import OverlayConfig, dismiss_overlay, wait_and_dismiss_overlay
from monitors.storefront.verify.presets import JUMP_POPUP, overlay_from_cli

MODAL = ".popup__modal"
CLOSE = ".popup__dismiss"


class DummyPage:
    """Overlay that stays up until it has been re-checked ``gone_on_check`` times."""

    def __init__(self, gone_on_check: int | None, *, close_visible: bool = True) -> None:
        self.gone_on_check = gone_on_check
        self.close_visible = close_visible
        self.checks = 0
        self.keys: list[str] = []
        self.clicks: list[str] = []

    def is_visible(self, selector: str, timeout: float = 0.0) -> bool:  # noqa: ARG002
        if selector == MODAL:
            self.checks += 1
            return self.gone_on_check is None or self.checks < self.gone_on_check
        if selector == CLOSE:
            return self.close_visible
        return False

    def click_selector(self, selector: str, timeout: float = 2.0) -> None:  # noqa: ARG002
        self.clicks.append(selector)

    def press_key(self, key: str) -> None:
        self.keys.append(key)


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    slept: list[float] = []
    monkeypatch.setattr(time, "sleep", lambda s: slept.append(s))
    return slept


def _config() -> OverlayConfig:
    return OverlayConfig(overlay_selector=MODAL, close_selectors=(CLOSE,))


def test_gone_on_third_attempt_stops_after_three() -> None:
    page = DummyPage(gone_on_check=3)
    assert dismiss_overlay(page, _config(), max_attempts=5) is True
    assert page.checks == 3
    assert page.keys == ["Escape"] * 3
    assert page.clicks == [CLOSE] * 3


def test_never_gone_returns_false_after_ceiling(_no_sleep: list[float]) -> None:
    page = DummyPage(gone_on_check=None)
    assert dismiss_overlay(page, _config(), max_attempts=5) is False
    assert page.checks == 5
    # click + escape pauses per attempt, retry pause between attempts only
    assert _no_sleep.count(1.0) == 4


def test_driver_errors_never_escape() -> None:
    class Flaky(DummyPage):
        def click_selector(self, selector: str, timeout: float = 2.0) -> None:  # noqa: ARG002
            raise DriverError("element not visible")

        def press_key(self, key: str) -> None:
            raise DriverError("CDP response timed out")

    page = Flaky(gone_on_check=2)
    assert dismiss_overlay(page, _config()) is True
    assert page.checks == 2


def test_closed_page_counts_as_dismissed() -> None:
    class Closed(DummyPage):
        def is_visible(self, selector: str, timeout: float = 0.0) -> bool:  # noqa: ARG002
            raise SessionClosed("Target closed")

    assert dismiss_overlay(Closed(gone_on_check=None), _config()) is True


def test_wait_and_dismiss_skips_when_overlay_never_appears() -> None:
    class NoOverlay(DummyPage):
        def is_visible(self, selector: str, timeout: float = 0.0) -> bool:  # noqa: ARG002
            self.checks += 1
            return False

    page = NoOverlay(gone_on_check=None)
    assert wait_and_dismiss_overlay(page, _config(), timeout=0.1) is True
    assert page.checks == 1
    assert page.keys == []


def test_wait_and_dismiss_dismisses_visible_overlay() -> None:
    page = DummyPage(gone_on_check=3)
    assert wait_and_dismiss_overlay(page, _config()) is True
    # one wait check plus two dismissal rounds
    assert page.checks == 3
    assert page.keys == ["Escape"] * 2


def test_cli_override_keeps_preset_defaults() -> None:
    assert overlay_from_cli(None, None) is JUMP_POPUP
    cfg = overlay_from_cli(".promo", None)
    assert cfg.overlay_selector == ".promo"
    assert cfg.close_selectors == JUMP_POPUP.close_selectors
    assert cfg.generic_fallback is True
