"""Evidence collection and resilient action verification for storefront journeys."""

from __future__ import annotations

__version__ = "1.0.0"
