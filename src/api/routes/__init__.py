"""API route modules."""
from __future__ import annotations

from . import compliance, deals, health, jobs, rules

__all__ = ["compliance", "deals", "health", "jobs", "rules"]
