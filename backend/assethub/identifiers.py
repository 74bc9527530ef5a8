from __future__ import annotations

import uuid


def new_id(prefix: str, length: int = 8) -> str:
    """Human-readable identifier, e.g. ``APR-1F3A9C0B``."""
    return f"{prefix}-{uuid.uuid4().hex[:length].upper()}"


def id_factory(prefix: str, length: int = 8):
    """Column default that mints a fresh identifier per row."""
    def _make():
        return new_id(prefix, length)
    return _make
