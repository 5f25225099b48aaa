import logging
from typing import Optional

from supabase import Client

from schoolops.core import clock

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ["pending", "scheduled"]
PARENT_CHANNELS = ["parent-liff", "parent"]


def get_makeup(db: Client, makeup_id: str) -> Optional[dict]:
    result = db.table("makeup_classes").select("*").eq("id", makeup_id).limit(1).execute()
    return result.data[0] if result.data else None


def get_class_branch_id(db: Client, class_id: str) -> Optional[str]:
    """Branch of a class, copied onto makeup rows so they filter by branch."""
    result = db.table("classes").select("id, branch_id").eq("id", class_id).limit(1).execute()
    return result.data[0].get("branch_id") if result.data else None


def find_active_makeup(db: Client, student_id: str, class_id: str, schedule_id: str) -> Optional[dict]:
    """The pending/scheduled makeup covering one session, if any."""
    result = (
        db.table("makeup_classes")
        .select("*")
        .eq("student_id", student_id)
        .eq("original_class_id", class_id)
        .eq("original_schedule_id", schedule_id)
        .in_("status", ACTIVE_STATUSES)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def compute_quota(db: Client, student_id: str, class_id: str) -> dict:
    """
    Makeup quota used by a student in one class.

    scheduled: parent-initiated makeups of type "scheduled"
    absences:  absent attendance marks on the class's sessions, skipping
               sessions already covered by one of those makeups
    """
    makeups = (
        db.table("makeup_classes")
        .select("id, original_schedule_id")
        .eq("student_id", student_id)
        .eq("original_class_id", class_id)
        .eq("type", "scheduled")
        .in_("requested_by", PARENT_CHANNELS)
        .neq("status", "cancelled")
        .execute()
    ).data or []

    schedules = (
        db.table("class_schedules")
        .select("id")
        .eq("class_id", class_id)
        .execute()
    ).data or []
    schedule_ids = [row["id"] for row in schedules]

    absent_rows = []
    if schedule_ids:
        absent_rows = (
            db.table("attendance")
            .select("id, schedule_id")
            .eq("student_id", student_id)
            .eq("status", "absent")
            .in_("schedule_id", schedule_ids)
            .execute()
        ).data or []

    covered = {row["original_schedule_id"] for row in makeups}
    absences = sum(1 for row in absent_rows if row["schedule_id"] not in covered)

    return {
        "scheduled": len(makeups),
        "absences": absences,
        "total": len(makeups) + absences,
    }


def upsert_attendance(db: Client, schedule_id: str, student_id: str, fields: dict) -> None:
    """Update the (schedule, student) attendance row, inserting it when absent."""
    existing = (
        db.table("attendance")
        .select("id")
        .eq("schedule_id", schedule_id)
        .eq("student_id", student_id)
        .limit(1)
        .execute()
    )
    if existing.data:
        db.table("attendance").update(fields).eq("id", existing.data[0]["id"]).execute()
    else:
        row = {"schedule_id": schedule_id, "student_id": student_id}
        row.update(fields)
        db.table("attendance").insert(row).execute()


def delete_attendance(db: Client, schedule_id: str, student_id: str) -> None:
    db.table("attendance").delete().eq("schedule_id", schedule_id).eq("student_id", student_id).execute()


def write_deletion_log(db: Client, makeup: dict, deleted_by: str, reason: Optional[str]) -> None:
    try:
        db.table("deletion_logs").insert({
            "type": "makeup_class",
            "document_id": makeup["id"],
            "deleted_by": deleted_by,
            "deleted_at": clock.now().isoformat(),
            "reason": reason or "No reason provided",
            "original_data": {
                "studentId": makeup.get("student_id"),
                "classId": makeup.get("original_class_id"),
                "scheduleId": makeup.get("original_schedule_id"),
                "status": makeup.get("status"),
                "requestDate": makeup.get("request_date"),
            },
        }).execute()
    except Exception as e:
        logger.error("Error creating deletion log for makeup %s: %s", makeup["id"], e)


def times_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    # "HH:MM" strings compare correctly as text
    return start_a < end_b and start_b < end_a
