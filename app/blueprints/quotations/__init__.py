"""
Quotations blueprint package.

Exposes quotations_bp for app factory registration.
"""

from __future__ import annotations

from .routes import quotations_bp  # noqa: F401
