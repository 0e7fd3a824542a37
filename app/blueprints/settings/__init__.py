"""
Settings (master data) blueprint package.

The actual routes are in routes.py.
"""

from .routes import settings_bp  # noqa: F401
