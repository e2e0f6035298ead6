"""
Serverless ASGI entrypoint.

Platforms that import a module-level ``app`` (Vercel's Python runtime and
similar) load this file from the project root; ``src/`` is put on the path
so the application's top-level packages resolve.
"""
from __future__ import annotations

import os
import sys

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(project_root, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from api.app import app  # noqa: E402

__all__ = ["app"]
