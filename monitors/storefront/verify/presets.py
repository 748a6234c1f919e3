"""Storefront presets: the selectors our journeys use today.

Kept as plain data so a journey (or the CLI) can override any of it without
touching the engine.
"""

from __future__ import annotations

from typing import Any

from .overlay import OverlayConfig
from .signals import Signal, signals_from_config

# Region-redirect prompt shown on first visit.
JUMP_POPUP = OverlayConfig(
    overlay_selector=".cozy-crd__modal",
    close_selectors=(
        ".cozy-crd__dismiss",
        ".CozyCloseCRModal",
        ".cozy-crd__decline-button",
    ),
)

CART_COUNT_SELECTOR = "[data-cart-count], .cart-count-bubble, .cart-badge"
CART_ITEM_SELECTOR = ".cart-item, .line-item, [data-testid*='cart-item']"
CART_DRAWER_SELECTOR = "#halo-side-cart-preview"
ADD_TO_CART_BUTTON_SELECTOR = (
    "form[action*='/cart/add'] [type='submit'], button[name='add'], [data-add-to-cart], .product-form__submit"
)

ADD_TO_CART_SIGNALS: list[dict[str, Any]] = [
    {"kind": "navigation", "name": "cart_page", "url_pattern": r"/cart\b", "supporting_selectors": [CART_ITEM_SELECTOR]},
    {"kind": "indicator", "name": "cart_count", "selector": CART_COUNT_SELECTOR, "timeout": 5.0},
    {"kind": "affordance", "name": "cart_drawer", "selector": CART_DRAWER_SELECTOR, "timeout": 3.0},
    {
        "kind": "control",
        "name": "add_button",
        "selector": ADD_TO_CART_BUTTON_SELECTOR,
        "expected": r"added|in cart|已加入",
    },
]


def add_to_cart_signals() -> tuple[Signal, ...]:
    return signals_from_config(ADD_TO_CART_SIGNALS)


def overlay_from_cli(overlay_selector: str | None, close_selectors: list[str] | None) -> OverlayConfig:
    """Preset jump popup, with selectors overridden where given."""
    if not overlay_selector and not close_selectors:
        return JUMP_POPUP
    return OverlayConfig(
        overlay_selector=overlay_selector or JUMP_POPUP.overlay_selector,
        close_selectors=tuple(close_selectors) if close_selectors else JUMP_POPUP.close_selectors,
        generic_fallback=True,
    )


__all__ = [
    "ADD_TO_CART_SIGNALS",
    "CART_COUNT_SELECTOR",
    "JUMP_POPUP",
    "add_to_cart_signals",
    "overlay_from_cli",
]
