"""
Asset lifecycle statuses and the operation-type -> status inference table.
"""

from __future__ import annotations


# Asset statuses
ASSET_PENDING = "pending"
ASSET_IDLE = "idle"
ASSET_IN_USE = "in-use"
ASSET_BORROWING = "borrowing"
ASSET_MAINTENANCE = "maintenance"
ASSET_SCRAPPED = "scrapped"
ASSET_LOST = "lost"

ASSET_STATUSES = {
    ASSET_PENDING,
    ASSET_IDLE,
    ASSET_IN_USE,
    ASSET_BORROWING,
    ASSET_MAINTENANCE,
    ASSET_SCRAPPED,
    ASSET_LOST,
}

# Asset operation types
ASSET_OPERATION_TYPES = (
    "purchase",
    "inbound",
    "receive",
    "borrow",
    "return",
    "transfer",
    "maintenance",
    "dispose",
    "scrap",
    "recycle",
    "lost",
    "other",
)

# Every operation type must decide what happens to the asset; None means
# "leave status alone". purchase waits for the follow-up inbound; transfer,
# scrap, recycle and lost are recorded without moving the asset status.
STATUS_BY_OPERATION_TYPE: dict[str, str | None] = {
    "purchase": None,
    "inbound": ASSET_IDLE,
    "receive": ASSET_IN_USE,
    "borrow": ASSET_BORROWING,
    "return": ASSET_IDLE,
    "transfer": None,
    "maintenance": ASSET_MAINTENANCE,
    "dispose": ASSET_SCRAPPED,
    "scrap": None,
    "recycle": None,
    "lost": None,
    "other": None,
}

_missing = set(ASSET_OPERATION_TYPES) ^ set(STATUS_BY_OPERATION_TYPE)
if _missing:
    raise RuntimeError(f"Asset status inference table out of sync for: {sorted(_missing)}")


def infer_asset_status(operation_type: str) -> str | None:
    """
    Next asset status after an operation of ``operation_type`` completes.

    Raises:
        KeyError: unknown operation type (callers validate types on input)
    """
    return STATUS_BY_OPERATION_TYPE[operation_type]
