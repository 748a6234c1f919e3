from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class DriverError(Exception):
    """A browser-driver command failed (transport or CDP-level error)."""


class SessionClosed(DriverError):
    """The page/context behind a session is gone (closed tab, dropped socket)."""


_CLOSED_HINTS = (
    "connection is already closed",
    "socket is already closed",
    "connection to remote host was lost",
    "target closed",
    "no target with given id",
    "cannot find context with specified id",
    "execution context was destroyed",
    "inspected target navigated or closed",
    "session closed",
)


def looks_closed(exc: BaseException) -> bool:
    """Heuristic: does a driver error mean the page or context vanished?"""
    if isinstance(exc, SessionClosed):
        return True
    msg = str(exc).lower()
    return any(h in msg for h in _CLOSED_HINTS)


@dataclass
class MonitorError(Exception):
    """Structured error for caller misuse (bad signal config, no page target)."""

    component: str
    action: str
    reason: str
    suggestion: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.component}] {self.action} failed: {self.reason}. Suggestion: {self.suggestion}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "component": self.component,
            "action": self.action,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


__all__ = ["DriverError", "MonitorError", "SessionClosed", "looks_closed"]
