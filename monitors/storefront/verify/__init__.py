from .engine import indicator_changed, parse_number, verify_action
from .overlay import DISMISS_OVERLAYS_JS, OverlayConfig, dismiss_overlay, wait_and_dismiss_overlay
from .signals import (
    ActionOutcome,
    ControlStateSignal,
    IndicatorChangeSignal,
    NavigationSignal,
    Signal,
    SignalResult,
    TransientAffordanceSignal,
    signal_from_config,
    signals_from_config,
)

__all__ = [
    "DISMISS_OVERLAYS_JS",
    "ActionOutcome",
    "ControlStateSignal",
    "IndicatorChangeSignal",
    "NavigationSignal",
    "OverlayConfig",
    "Signal",
    "SignalResult",
    "TransientAffordanceSignal",
    "dismiss_overlay",
    "indicator_changed",
    "parse_number",
    "signal_from_config",
    "signals_from_config",
    "verify_action",
    "wait_and_dismiss_overlay",
]
