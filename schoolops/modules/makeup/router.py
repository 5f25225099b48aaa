import logging
from datetime import date as date_type
from typing import Optional, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from supabase import Client

from schoolops.core import clock
from schoolops.core.dependencies import require_capability
from schoolops.core.errors import bad_request, not_found, internal_error, is_unique_violation
from schoolops.core.notifications import send_makeup_notification
from schoolops.db.supabase import get_supabase
from schoolops.modules.makeup.helpers import (
    find_active_makeup,
    get_class_branch_id,
    get_makeup,
    times_overlap,
    write_deletion_log,
)
from schoolops.schemas.makeup import (
    AvailabilityResponse,
    MakeupAttendance,
    MakeupCreate,
    MakeupDelete,
    MakeupRevert,
    MakeupSchedule,
    MakeupScheduleResponse,
    MakeupStats,
    MakeupStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Makeup"])

can_view = require_capability("makeup.view")
can_manage = require_capability("makeup.manage")


def _load_or_404(db: Client, makeup_id: str) -> dict:
    makeup = get_makeup(db, makeup_id)
    if not makeup:
        raise not_found("Makeup class not found")
    return makeup


@router.get("", response_model=List[dict])
def list_makeup_classes(
    status: Optional[MakeupStatus] = None,
    student_id: Optional[str] = Query(None, alias="studentId"),
    class_id: Optional[str] = Query(None, alias="classId"),
    branch_id: Optional[str] = Query(None, alias="branchId"),
    user: dict = Depends(can_view),
    db: Client = Depends(get_supabase),
):
    """
    List makeup classes, newest first.
    """
    try:
        query = db.table("makeup_classes").select("*")
        if status:
            query = query.eq("status", status)
        if student_id:
            query = query.eq("student_id", student_id)
        if class_id:
            query = query.eq("original_class_id", class_id)
        if branch_id:
            query = query.eq("branch_id", branch_id)
        result = query.order("created_at", desc=True).execute()
        return result.data or []
    except Exception as e:
        logger.exception("Error getting makeup classes")
        raise internal_error("Failed to fetch makeup classes", e)


@router.get("/stats", response_model=MakeupStats)
def get_makeup_stats(
    branch_id: Optional[str] = Query(None, alias="branchId"),
    user: dict = Depends(can_view),
    db: Client = Depends(get_supabase),
):
    try:
        query = db.table("makeup_classes").select("id, status, type, attendance_status")
        if branch_id:
            query = query.eq("branch_id", branch_id)
        makeups = query.execute().data or []
    except Exception as e:
        logger.exception("Error getting makeup stats")
        raise internal_error("Failed to fetch makeup statistics", e)

    by_status = {}
    by_type = {}
    completed = 0
    attended = 0
    for makeup in makeups:
        by_status[makeup["status"]] = by_status.get(makeup["status"], 0) + 1
        by_type[makeup["type"]] = by_type.get(makeup["type"], 0) + 1
        if makeup["status"] == "completed":
            completed += 1
            if makeup.get("attendance_status") == "present":
                attended += 1

    rate = (attended / completed * 100) if completed else 0.0
    return MakeupStats(
        total=len(makeups),
        by_status=by_status,
        by_type=by_type,
        attendance_rate=round(rate, 2),
    )


@router.get("/availability", response_model=AvailabilityResponse)
def check_availability(
    teacher_id: str = Query(..., alias="teacherId"),
    date: date_type = Query(...),
    start_time: str = Query(..., alias="startTime"),
    end_time: str = Query(..., alias="endTime"),
    branch_id: str = Query(..., alias="branchId"),
    room_id: str = Query(..., alias="roomId"),
    exclude_makeup_id: Optional[str] = Query(None, alias="excludeMakeupId"),
    user: dict = Depends(can_view),
    db: Client = Depends(get_supabase),
):
    """
    Check whether a teacher and room are free for a makeup window.

    Blocks on a branch holiday, on another scheduled makeup taught by the
    same teacher that overlaps, or on an overlapping makeup in the same room.
    """
    day = date.isoformat()
    try:
        holidays = (
            db.table("holidays")
            .select("name")
            .eq("branch_id", branch_id)
            .eq("date", day)
            .execute()
        ).data or []
        if holidays:
            return AvailabilityResponse(available=False, reason=f"Holiday: {holidays[0]['name']}")

        teacher_query = (
            db.table("makeup_classes")
            .select("id, makeup_start_time, makeup_end_time")
            .eq("makeup_teacher_id", teacher_id)
            .eq("makeup_date", day)
            .eq("status", "scheduled")
        )
        if exclude_makeup_id:
            teacher_query = teacher_query.neq("id", exclude_makeup_id)
        for other in teacher_query.execute().data or []:
            other_start = (other.get("makeup_start_time") or "")[:5]
            other_end = (other.get("makeup_end_time") or "")[:5]
            if times_overlap(start_time, end_time, other_start, other_end):
                return AvailabilityResponse(
                    available=False,
                    reason=f"Teacher already has a makeup class {other_start}-{other_end}",
                )

        room_query = (
            db.table("makeup_classes")
            .select("id, makeup_start_time, makeup_end_time")
            .eq("makeup_branch_id", branch_id)
            .eq("makeup_room_id", room_id)
            .eq("makeup_date", day)
            .eq("status", "scheduled")
        )
        if exclude_makeup_id:
            room_query = room_query.neq("id", exclude_makeup_id)
        for other in room_query.execute().data or []:
            other_start = (other.get("makeup_start_time") or "")[:5]
            other_end = (other.get("makeup_end_time") or "")[:5]
            if times_overlap(start_time, end_time, other_start, other_end):
                return AvailabilityResponse(
                    available=False,
                    reason=f"Room is already used by a makeup class {other_start}-{other_end}",
                )

        return AvailabilityResponse(available=True)

    except Exception as e:
        logger.exception("Error checking makeup availability")
        raise internal_error("Failed to check availability", e)


@router.get("/{makeup_id}", response_model=dict)
def get_makeup_class(
    makeup_id: str,
    user: dict = Depends(can_view),
    db: Client = Depends(get_supabase),
):
    try:
        return _load_or_404(db, makeup_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error getting makeup class")
        raise internal_error("Failed to fetch makeup class", e)


@router.post("", response_model=dict)
def create_makeup_request(
    request: MakeupCreate,
    user: dict = Depends(can_manage),
    db: Client = Depends(get_supabase),
):
    """
    Staff-created makeup request, e.g. after taking attendance.
    """
    try:
        schedule_result = (
            db.table("class_schedules")
            .select("*")
            .eq("id", request.schedule_id)
            .eq("class_id", request.class_id)
            .limit(1)
            .execute()
        )
        if not schedule_result.data:
            raise not_found("Session not found")
        schedule = schedule_result.data[0]

        student_result = (
            db.table("students")
            .select("id, parent_id")
            .eq("id", request.student_id)
            .limit(1)
            .execute()
        )
        if not student_result.data:
            raise not_found("Student not found")

        if find_active_makeup(db, request.student_id, request.class_id, request.schedule_id):
            raise bad_request("Makeup already requested for this session")

        makeup_data = {
            "type": request.type,
            "original_class_id": request.class_id,
            "original_schedule_id": request.schedule_id,
            "student_id": request.student_id,
            "parent_id": student_result.data[0].get("parent_id"),
            "branch_id": get_class_branch_id(db, request.class_id),
            "requested_by": user["id"],
            "request_date": clock.now().isoformat(),
            "reason": request.reason or "Created by staff",
            "status": "pending",
            "original_session_number": schedule.get("session_number") or 0,
            "original_session_date": schedule.get("session_date"),
        }
        try:
            result = db.table("makeup_classes").insert(makeup_data).execute()
        except Exception as insert_error:
            if is_unique_violation(insert_error):
                raise bad_request("Makeup already requested for this session")
            raise

        logger.info("Staff %s created makeup %s for student %s", user["id"], result.data[0]["id"], request.student_id)
        return result.data[0]

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error creating makeup request")
        raise internal_error("Failed to create makeup request", e)


@router.post("/{makeup_id}/schedule", response_model=MakeupScheduleResponse)
def schedule_makeup_class(
    makeup_id: str,
    request: MakeupSchedule,
    user: dict = Depends(can_manage),
    db: Client = Depends(get_supabase),
):
    """
    Assign a makeup window and notify the parent over LINE.

    Scheduling an already scheduled makeup overwrites the previous window.
    The notification outcome is reported separately and never fails the
    scheduling itself.
    """
    if request.end_time <= request.start_time:
        raise bad_request("End time must be after start time")

    try:
        makeup = _load_or_404(db, makeup_id)
        if makeup["status"] not in ("pending", "scheduled"):
            raise bad_request(f"Cannot schedule a makeup class that is {makeup['status']}")

        now = clock.now().isoformat()
        update_data = {
            "status": "scheduled",
            "makeup_date": request.makeup_date.isoformat(),
            "makeup_start_time": request.start_time,
            "makeup_end_time": request.end_time,
            "makeup_teacher_id": request.teacher_id,
            "makeup_branch_id": request.branch_id,
            "makeup_room_id": request.room_id,
            "makeup_confirmed_at": now,
            "makeup_confirmed_by": user["id"],
            "updated_at": now,
        }
        db.table("makeup_classes").update(update_data).eq("id", makeup_id).execute()
        logger.info("Makeup %s scheduled for %s %s-%s", makeup_id, update_data["makeup_date"], request.start_time, request.end_time)

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error scheduling makeup class")
        raise internal_error("Failed to schedule makeup class", e)

    notification = send_makeup_notification(db, makeup_id, "scheduled")
    if not notification.sent:
        logger.warning("Makeup %s scheduled but parent was not notified: %s", makeup_id, notification.error)

    return MakeupScheduleResponse(
        message="Makeup class scheduled",
        makeup_id=makeup_id,
        status="scheduled",
        notification={"sent": notification.sent, "error": notification.error},
    )


@router.post("/{makeup_id}/attendance", response_model=dict)
def record_makeup_attendance(
    makeup_id: str,
    request: MakeupAttendance,
    user: dict = Depends(can_manage),
    db: Client = Depends(get_supabase),
):
    try:
        makeup = _load_or_404(db, makeup_id)
        if makeup["status"] != "scheduled":
            raise bad_request("Attendance can only be recorded for a scheduled makeup class")

        now = clock.now().isoformat()
        result = (
            db.table("makeup_classes")
            .update({
                "status": "completed",
                "attendance_status": request.status,
                "attendance_checked_by": user["id"],
                "attendance_checked_at": now,
                "attendance_note": request.note,
                "updated_at": now,
            })
            .eq("id", makeup_id)
            .execute()
        )
        return result.data[0] if result.data else {"id": makeup_id, "status": "completed"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error recording makeup attendance")
        raise internal_error("Failed to record makeup attendance", e)


@router.post("/{makeup_id}/revert", response_model=dict)
def revert_makeup_to_scheduled(
    makeup_id: str,
    request: MakeupRevert,
    user: dict = Depends(can_manage),
    db: Client = Depends(get_supabase),
):
    """
    Undo a recorded makeup attendance, returning the class to scheduled.
    """
    try:
        makeup = _load_or_404(db, makeup_id)
        if makeup["status"] != "completed":
            raise bad_request("Only completed makeup classes can be reverted")

        today = clock.now().date().isoformat()
        actor = user.get("display_name") or user["id"]
        entry = f"[{today}] Attendance reverted: {request.reason} (by {actor})"
        notes = f"{makeup['notes']}\n{entry}" if makeup.get("notes") else entry

        result = (
            db.table("makeup_classes")
            .update({
                "status": "scheduled",
                "attendance_status": None,
                "attendance_checked_by": None,
                "attendance_checked_at": None,
                "attendance_note": None,
                "notes": notes,
                "updated_at": clock.now().isoformat(),
            })
            .eq("id", makeup_id)
            .execute()
        )
        return result.data[0] if result.data else {"id": makeup_id, "status": "scheduled"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error reverting makeup class")
        raise internal_error("Failed to revert makeup class", e)


@router.delete("/{makeup_id}")
def delete_makeup_class(
    makeup_id: str,
    request: Optional[MakeupDelete] = Body(None),
    user: dict = Depends(can_manage),
    db: Client = Depends(get_supabase),
):
    """
    Delete a makeup class. Completed makeups are kept for the record.
    """
    request = request or MakeupDelete()
    try:
        logger.info("Deleting makeup class: %s", makeup_id)
        makeup = _load_or_404(db, makeup_id)

        if makeup["status"] == "completed":
            raise bad_request("Cannot delete a completed makeup class")

        db.table("makeup_classes").delete().eq("id", makeup_id).execute()

        if request.deleted_by:
            write_deletion_log(db, makeup, request.deleted_by, request.reason)

        logger.info("Makeup deleted successfully: %s", makeup_id)
        return {"success": True, "message": "Makeup class deleted"}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error deleting makeup class")
        raise internal_error("Failed to delete makeup class", e)
