"""Exchange the time slot, room and day of two classes.

The schedule store only offers independent single-record writes, so the swap
is best-effort atomic: the second write's failure is compensated by
restoring the first record. If the store gains multi-record transactions,
prefer those over this compensation.
"""
from __future__ import annotations

import logging

from edumanage.core.exceptions import SwapCompensationFailure, SwapPartialFailure
from edumanage.services.ports import ScheduleRecord, ScheduleStore

logger = logging.getLogger(__name__)

SWAP_FIELDS = ("start_time", "end_time", "room_id", "day_of_week")


def slot_values(record: ScheduleRecord) -> dict[str, str]:
    return {field: getattr(record, field) for field in SWAP_FIELDS}


def swap_classes(store: ScheduleStore, class_a_id: str | None, class_b_id: str | None) -> bool:
    """Swap two classes. Returns False without writing when the pair is not two distinct existing classes."""
    if not class_a_id or not class_b_id or class_a_id == class_b_id:
        return False
    class_a = store.get(class_a_id)
    class_b = store.get(class_b_id)
    if class_a is None or class_b is None:
        return False

    a_values = slot_values(class_a)
    b_values = slot_values(class_b)

    # Nothing has been written if this fails.
    store.update(class_a_id, b_values)
    try:
        store.update(class_b_id, a_values)
    except Exception as exc:
        logger.warning("Swap of %s and %s failed on second write; restoring %s", class_a_id, class_b_id, class_a_id)
        try:
            store.update(class_a_id, a_values)
        except Exception as compensation_exc:
            logger.error(
                "Swap rollback failed; class %s left with the schedule of %s",
                class_a_id,
                class_b_id,
            )
            raise SwapCompensationFailure(exc, compensation_exc, class_a_id, class_b_id) from compensation_exc
        raise SwapPartialFailure(exc, class_a_id, class_b_id) from exc

    logger.info("Swapped schedule of classes %s and %s", class_a_id, class_b_id)
    return True
