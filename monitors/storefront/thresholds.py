"""Web-vitals thresholds and how strictly they are applied.

Synthetic monitoring starts with loose thresholds; tighten after a couple of
weeks of recorded runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class VitalsThresholds:
    lcp: float  # Largest Contentful Paint (ms)
    cls: float  # Cumulative Layout Shift (score)
    inp: float  # Interaction latency (ms)


VITALS_THRESHOLDS: dict[str, VitalsThresholds] = {
    "P0": VitalsThresholds(lcp=4000, cls=0.10, inp=300),
    "P1": VitalsThresholds(lcp=5000, cls=0.15, inp=400),
    "P2": VitalsThresholds(lcp=6000, cls=0.20, inp=500),
}

SLOW_REQUEST_MS = 4000


class Severity(str, Enum):
    """Whether a threshold breach only warns or fails the journey."""

    ADVISORY = "advisory"
    ENFORCE = "enforce"

    @classmethod
    def parse(cls, raw: str | None) -> Severity:
        v = (raw or "").strip().lower()
        if v in {"enforce", "strict", "hard", "fail"}:
            return cls.ENFORCE
        return cls.ADVISORY


def normalize_priority(raw: str | None) -> str:
    p = (raw or "").strip().upper()
    return p if p in VITALS_THRESHOLDS else "P0"


def get_thresholds(priority: str | None) -> VitalsThresholds:
    return VITALS_THRESHOLDS[normalize_priority(priority)]


__all__ = [
    "SLOW_REQUEST_MS",
    "Severity",
    "VITALS_THRESHOLDS",
    "VitalsThresholds",
    "get_thresholds",
    "normalize_priority",
]
