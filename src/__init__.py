"""Top-level package for the Deal Decision & Compliance Engine."""
from __future__ import annotations

__version__ = "1.0.0"

__all__ = [
    "api",
    "compliance",
    "core",
    "domain",
    "scoring",
    "services",
]
