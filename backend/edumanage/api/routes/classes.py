from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from edumanage.api.deps import ClearedPrincipal, get_db, require_roles
from edumanage.schemas.classes import ClassSlotOut, SwapRequest, SwapResultOut
from edumanage.services.landing import Role
from edumanage.services.ports import ScheduleRecord
from edumanage.services.repositories import SqlScheduleStore
from edumanage.services.swap import swap_classes

router = APIRouter()


def _slot_out(record: ScheduleRecord) -> ClassSlotOut:
    return ClassSlotOut(
        id=record.id,
        start_time=record.start_time,
        end_time=record.end_time,
        room_id=record.room_id,
        day_of_week=record.day_of_week,
    )


@router.post("/swap", response_model=SwapResultOut)
def swap(
    payload: SwapRequest,
    current: ClearedPrincipal = Depends(require_roles(Role.admin, Role.instructor)),
    db: Session = Depends(get_db),
) -> SwapResultOut:
    store = SqlScheduleStore(db)
    if not swap_classes(store, payload.class_a_id, payload.class_b_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Select two different existing classes to swap",
        )
    return SwapResultOut(
        message="The two classes have swapped their schedule.",
        class_a=_slot_out(store.get(payload.class_a_id)),
        class_b=_slot_out(store.get(payload.class_b_id)),
    )
