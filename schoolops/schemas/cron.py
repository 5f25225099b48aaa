from pydantic import BaseModel, Field
from typing import List


class ClassStatusDetails(BaseModel):
    classes_checked: int = Field(0, alias="classesChecked")
    classes_completed: int = Field(0, alias="classesCompleted")
    classes_started: int = Field(0, alias="classesStarted")
    errors: List[str] = []

    class Config:
        populate_by_name = True


class ClassStatusResponse(BaseModel):
    success: bool = True
    message: str
    details: ClassStatusDetails
    timestamp: str


class ReminderDetails(BaseModel):
    class_reminders: int = Field(0, alias="classReminders")
    makeup_reminders: int = Field(0, alias="makeupReminders")
    errors: List[str] = []

    class Config:
        populate_by_name = True


class ReminderResponse(BaseModel):
    success: bool = True
    message: str
    sent_count: int = Field(..., alias="sentCount")
    details: ReminderDetails
    timestamp: str

    class Config:
        populate_by_name = True
