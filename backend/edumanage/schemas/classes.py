from pydantic import BaseModel, Field


class SwapRequest(BaseModel):
    class_a_id: str = Field(min_length=1, max_length=36)
    class_b_id: str = Field(min_length=1, max_length=36)


class ClassSlotOut(BaseModel):
    id: str
    start_time: str
    end_time: str
    room_id: str
    day_of_week: str


class SwapResultOut(BaseModel):
    message: str
    class_a: ClassSlotOut
    class_b: ClassSlotOut
