"""
Tasks blueprint package.

Exposes tasks_bp for app factory registration.
"""

from __future__ import annotations

from .routes import tasks_bp  # noqa: F401
