import logging
from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from schoolops.core import clock
from schoolops.core.dependencies import require_capability
from schoolops.core.errors import not_found, internal_error
from schoolops.db.supabase import get_supabase
from schoolops.modules.makeup.helpers import find_active_makeup, write_deletion_log
from schoolops.schemas.attendance import AttendanceSave, AttendanceSheet

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Attendance"])

STATUSES = ("present", "absent", "late", "sick", "leave")
# Marks that mean the student attended, so an open makeup is no longer needed
ATTENDED = ("present", "late")


def _load_schedule(db: Client, schedule_id: str) -> dict:
    result = db.table("class_schedules").select("*").eq("id", schedule_id).limit(1).execute()
    if not result.data:
        raise not_found("Session not found")
    return result.data[0]


def _stats(records: list) -> dict:
    stats = {status: 0 for status in STATUSES}
    stats["total"] = len(records)
    for record in records:
        if record.get("status") in stats:
            stats[record["status"]] += 1
    return stats


@router.get("/schedule/{schedule_id}", response_model=AttendanceSheet)
def get_schedule_attendance(
    schedule_id: str,
    user: dict = Depends(require_capability("attendance.view")),
    db: Client = Depends(get_supabase),
):
    """
    Attendance sheet for one session with per-status counts.
    """
    try:
        _load_schedule(db, schedule_id)
        result = (
            db.table("attendance")
            .select("*")
            .eq("schedule_id", schedule_id)
            .order("student_id")
            .execute()
        )
        records = result.data or []
        return AttendanceSheet(schedule_id=schedule_id, records=records, stats=_stats(records))

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error getting attendance by schedule")
        raise internal_error("Failed to fetch attendance", e)


@router.put("/schedule/{schedule_id}", response_model=AttendanceSheet)
def save_schedule_attendance(
    schedule_id: str,
    payload: AttendanceSave,
    user: dict = Depends(require_capability("attendance.manage")),
    db: Client = Depends(get_supabase),
):
    """
    Replace the attendance sheet for a session.

    Existing rows for the session are deleted and the submitted ones
    inserted, one per student (the last entry wins on duplicates). A student
    marked present or late loses any open makeup request for the session.
    """
    try:
        schedule = _load_schedule(db, schedule_id)

        by_student = {}
        for entry in payload.records:
            by_student[entry.student_id] = entry

        checked_at = clock.now().isoformat()
        rows = [
            {
                "schedule_id": schedule_id,
                "student_id": entry.student_id,
                "status": entry.status,
                "note": entry.note,
                "feedback": entry.feedback,
                "checked_at": checked_at,
                "checked_by": user["id"],
            }
            for entry in by_student.values()
        ]

        db.table("attendance").delete().eq("schedule_id", schedule_id).execute()
        if rows:
            db.table("attendance").insert(rows).execute()

        for entry in by_student.values():
            if entry.status not in ATTENDED:
                continue
            try:
                makeup = find_active_makeup(db, entry.student_id, schedule["class_id"], schedule_id)
                if makeup:
                    db.table("makeup_classes").delete().eq("id", makeup["id"]).execute()
                    write_deletion_log(db, makeup, user["id"], "Attendance updated to present")
                    logger.info("Removed makeup %s: student %s attended", makeup["id"], entry.student_id)
            except Exception as makeup_error:
                logger.error("Error removing makeup for student %s: %s", entry.student_id, makeup_error)

        return AttendanceSheet(schedule_id=schedule_id, records=rows, stats=_stats(rows))

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error saving attendance")
        raise internal_error("Failed to save attendance", e)
