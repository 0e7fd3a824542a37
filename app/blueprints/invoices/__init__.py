"""
Invoices blueprint package.

Exposes invoices_bp for app factory registration.
"""

from __future__ import annotations

from .routes import invoices_bp  # noqa: F401
