from pydantic import BaseModel, Field
from typing import Optional, Literal

MakeupType = Literal["scheduled", "ad-hoc"]


# Missing ids are reported by the router as "Incomplete request"
class LeaveRequestCreate(BaseModel):
    student_id: Optional[str] = Field(None, alias="studentId")
    class_id: Optional[str] = Field(None, alias="classId")
    schedule_id: Optional[str] = Field(None, alias="scheduleId")
    reason: Optional[str] = None
    type: Optional[MakeupType] = None

    class Config:
        populate_by_name = True


class QuotaDetails(BaseModel):
    scheduled: int
    absences: int
    total: int


class LeaveRequestResponse(BaseModel):
    success: bool = True
    message: str
    makeup_id: str = Field(..., alias="makeupId")
    quota_used: int = Field(..., alias="quotaUsed")
    quota_limit: int = Field(..., alias="quotaLimit")
    quota_details: QuotaDetails = Field(..., alias="quotaDetails")

    class Config:
        populate_by_name = True


class CancelLeaveRequest(BaseModel):
    makeup_id: Optional[str] = Field(None, alias="makeupId")
    student_id: Optional[str] = Field(None, alias="studentId")
    class_id: Optional[str] = Field(None, alias="classId")
    schedule_id: Optional[str] = Field(None, alias="scheduleId")

    class Config:
        populate_by_name = True


class MessageResponse(BaseModel):
    success: bool = True
    message: str
