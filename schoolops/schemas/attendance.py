from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Dict

# Allowed attendance states
AttendanceStatus = Literal["present", "absent", "late", "sick", "leave"]


class AttendanceEntry(BaseModel):
    student_id: str = Field(..., alias="studentId")
    status: AttendanceStatus
    note: Optional[str] = None
    feedback: Optional[str] = None

    class Config:
        populate_by_name = True


class AttendanceSave(BaseModel):
    records: List[AttendanceEntry]


class AttendanceSheet(BaseModel):
    schedule_id: str = Field(..., alias="scheduleId")
    records: List[dict]
    stats: Dict[str, int]

    class Config:
        populate_by_name = True
