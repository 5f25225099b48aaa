from pydantic import BaseModel, Field
from typing import Optional, Literal, Dict
from datetime import date

MakeupStatus = Literal["pending", "scheduled", "completed", "cancelled"]
MakeupAttendanceStatus = Literal["present", "absent"]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class MakeupCreate(BaseModel):
    student_id: str = Field(..., alias="studentId")
    class_id: str = Field(..., alias="classId")
    schedule_id: str = Field(..., alias="scheduleId")
    reason: Optional[str] = None
    type: Literal["scheduled", "ad-hoc"] = "ad-hoc"

    class Config:
        populate_by_name = True


class MakeupSchedule(BaseModel):
    makeup_date: date = Field(..., alias="makeupDate")
    start_time: str = Field(..., alias="startTime", pattern=TIME_PATTERN)
    end_time: str = Field(..., alias="endTime", pattern=TIME_PATTERN)
    teacher_id: Optional[str] = Field(None, alias="teacherId")
    branch_id: Optional[str] = Field(None, alias="branchId")
    room_id: Optional[str] = Field(None, alias="roomId")

    class Config:
        populate_by_name = True


class MakeupAttendance(BaseModel):
    status: MakeupAttendanceStatus
    note: Optional[str] = None


class MakeupRevert(BaseModel):
    reason: str


class MakeupDelete(BaseModel):
    deleted_by: Optional[str] = Field(None, alias="deletedBy")
    reason: Optional[str] = None

    class Config:
        populate_by_name = True


class NotificationOutcome(BaseModel):
    sent: bool
    error: Optional[str] = None


class MakeupScheduleResponse(BaseModel):
    success: bool = True
    message: str
    makeup_id: str = Field(..., alias="makeupId")
    status: MakeupStatus
    notification: NotificationOutcome

    class Config:
        populate_by_name = True


class MakeupStats(BaseModel):
    total: int
    by_status: Dict[str, int] = Field(..., alias="byStatus")
    by_type: Dict[str, int] = Field(..., alias="byType")
    attendance_rate: float = Field(..., alias="attendanceRate")

    class Config:
        populate_by_name = True


class AvailabilityResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
