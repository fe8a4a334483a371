"""Inventory locking: moves items between AVAILABLE and IN_PROPOSAL.

Only the trade core writes ``InventoryItem.status`` once an item is part of
a proposal. Callers run these helpers inside ``unit_of_work`` so the item
writes land in the same transaction as the trade status change.
"""

import logging
from typing import Sequence

from sqlalchemy.orm import Session

from cardswap import errors
from cardswap.models.enums import InventoryStatus
from cardswap.models.inventory import InventoryItem

logger = logging.getLogger(__name__)


def load_for_proposal(db: Session, item_ids: Sequence[str], owner_id: str, side: str) -> list[InventoryItem]:
    """Load one side's items for a proposal and check they can be offered.

    Rows are selected FOR UPDATE so the availability check and the later
    lock write cannot interleave with another proposal on server databases.
    """
    items = (
        db.query(InventoryItem)
        .filter(InventoryItem.id.in_(list(item_ids)))
        .with_for_update()
        .all()
    )
    if len(items) != len(item_ids):
        raise errors.not_found(f"one or more {side} items were not found", side=side)

    if any(item.owner_id != owner_id for item in items):
        raise errors.forbidden(f"{side} items contain cards that do not belong to the user", side=side)

    if any(item.status != InventoryStatus.AVAILABLE for item in items):
        raise errors.conflict(f"{side} items contain cards that are not available", side=side)

    by_id = {item.id: item for item in items}
    return [by_id[item_id] for item_id in item_ids]


def lock_items(db: Session, item_ids: Sequence[str]) -> None:
    """AVAILABLE -> IN_PROPOSAL for every id, or CONFLICT if any was taken."""
    locked = (
        db.query(InventoryItem)
        .filter(
            InventoryItem.id.in_(list(item_ids)),
            InventoryItem.status == InventoryStatus.AVAILABLE,
        )
        .update({InventoryItem.status: InventoryStatus.IN_PROPOSAL})
    )
    if locked != len(item_ids):
        # Another proposal locked one of them after we read it
        raise errors.conflict("one or more items are no longer available")


def release_items(db: Session, item_ids: Sequence[str]) -> int:
    """Put a trade's items back on the shelf."""
    if not item_ids:
        return 0
    released = (
        db.query(InventoryItem)
        .filter(InventoryItem.id.in_(list(item_ids)))
        .update({InventoryItem.status: InventoryStatus.AVAILABLE})
    )
    logger.debug("Released %d inventory items", released)
    return released


def transfer_items(db: Session, item_ids: Sequence[str], new_owner_id: str) -> int:
    """Hand items to their new owner and make them available again."""
    if not item_ids:
        return 0
    return (
        db.query(InventoryItem)
        .filter(InventoryItem.id.in_(list(item_ids)))
        .update({
            InventoryItem.owner_id: new_owner_id,
            InventoryItem.status: InventoryStatus.AVAILABLE,
        })
    )
