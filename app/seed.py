"""
app/seed.py

Seed the named counters used for reference numbering.

Rules:
- Safe to run multiple times (idempotent).
- Existing counters are never reset; only missing ones are created at 0.
"""

from __future__ import annotations

from .extensions import db
from .models import Counter
from .numbering import KNOWN_COUNTERS


def seed_counters() -> list[str]:
    """Create missing counters. Returns the names that were created."""
    created = []
    for name in KNOWN_COUNTERS:
        exists = Counter.query.filter_by(name=name).first()
        if exists:
            continue
        db.session.add(Counter(name=name, current_value=0))
        created.append(name)

    db.session.commit()
    return created
