import logging
from datetime import timedelta

from fastapi import APIRouter, Depends
from supabase import Client

from schoolops.core import clock
from schoolops.core.errors import internal_error
from schoolops.core.notifications import send_class_reminder, send_makeup_notification
from schoolops.core.security import verify_cron_secret
from schoolops.db.supabase import get_supabase
from schoolops.schemas.cron import (
    ClassStatusDetails,
    ClassStatusResponse,
    ReminderDetails,
    ReminderResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


def has_future_sessions(db: Client, class_id: str, today: str) -> bool:
    result = (
        db.table("class_schedules")
        .select("id, session_date")
        .eq("class_id", class_id)
        .neq("status", "cancelled")
        .gt("session_date", today)
        .execute()
    )
    return bool(result.data)


def set_class_status(db: Client, class_id: str, status: str, from_statuses: list) -> bool:
    """Conditional update; False when the class already left `from_statuses`."""
    result = (
        db.table("classes")
        .update({"status": status})
        .eq("id", class_id)
        .in_("status", from_statuses)
        .execute()
    )
    return bool(result.data)


@router.get("/update-class-status", response_model=ClassStatusResponse)
def update_class_status(db: Client = Depends(get_supabase)):
    """
    Advance class status by calendar date.

    published -> started once start_date has arrived; started/published ->
    completed once end_date has passed and no non-cancelled session remains
    after today. Never moves a class backwards. A failing class is recorded
    in `errors` and the run carries on with the next one.
    """
    now = clock.now()
    today = now.date().isoformat()
    logger.info("=== Starting class status update cron job at %s ===", now.isoformat())

    try:
        classes = (
            db.table("classes")
            .select("id, name, status, start_date, end_date")
            .in_("status", ["started", "published"])
            .execute()
        ).data or []
    except Exception as e:
        logger.exception("Error fetching classes")
        raise internal_error("Internal server error", e)

    logger.info("Found %s active/published classes", len(classes))
    details = ClassStatusDetails()

    for cls in classes:
        try:
            details.classes_checked += 1

            if not cls.get("end_date"):
                logger.info("Class %s has no end date", cls["id"])
                continue

            if clock.end_of_day(cls["end_date"]) < now:
                logger.info('Class "%s" (%s) end date has passed', cls.get("name"), cls["id"])
                if not has_future_sessions(db, cls["id"], today):
                    try:
                        if set_class_status(db, cls["id"], "completed", ["started", "published"]):
                            details.classes_completed += 1
                            logger.info("  Marked class as completed")
                    except Exception as update_error:
                        logger.error("  Error updating class %s: %s", cls["id"], update_error)
                        details.errors.append(f"Class {cls['id']}: {update_error}")
                else:
                    logger.info("  Class still has future sessions")

            if cls["status"] == "published":
                start_at = clock.parse_moment(cls.get("start_date"))
                if start_at is not None and start_at <= now:
                    logger.info('Class "%s" (%s) should be started', cls.get("name"), cls["id"])
                    try:
                        # No-op when the same run just completed the class
                        if set_class_status(db, cls["id"], "started", ["published"]):
                            details.classes_started += 1
                    except Exception as update_error:
                        logger.error("  Error updating class %s: %s", cls["id"], update_error)
                        details.errors.append(f"Class {cls['id']}: {update_error}")

        except Exception as e:
            logger.error("Error processing class %s: %s", cls.get("id"), e)
            details.errors.append(f"Class {cls.get('id')}: {e}")

    logger.info(
        "=== Class status update completed: checked=%s completed=%s started=%s errors=%s ===",
        details.classes_checked, details.classes_completed, details.classes_started, len(details.errors),
    )

    return ClassStatusResponse(
        message=f"Updated {details.classes_completed} completed classes, {details.classes_started} started classes",
        details=details,
        timestamp=now.isoformat(),
    )


@router.get("/reminders", response_model=ReminderResponse)
def send_reminders(db: Client = Depends(get_supabase)):
    """
    Day-before LINE reminders for regular sessions and scheduled makeups.
    """
    now = clock.now()
    tomorrow = (now.date() + timedelta(days=1)).isoformat()
    day_after = (now.date() + timedelta(days=2)).isoformat()
    details = ReminderDetails()
    logger.info("=== Starting reminder cron job for %s ===", tomorrow)

    try:
        classes = (
            db.table("classes")
            .select("id, name, start_time, end_time")
            .eq("status", "started")
            .execute()
        ).data or []
    except Exception as e:
        logger.error("Error fetching classes: %s", e)
        details.errors.append(f"Class lookup error: {e}")
        classes = []

    for cls in classes:
        try:
            schedules = (
                db.table("class_schedules")
                .select("id, session_date, session_number")
                .eq("class_id", cls["id"])
                .eq("status", "scheduled")
                .gte("session_date", tomorrow)
                .lt("session_date", day_after)
                .execute()
            ).data or []
            if not schedules:
                continue

            enrollments = (
                db.table("enrollments")
                .select("student_id")
                .eq("class_id", cls["id"])
                .eq("status", "active")
                .execute()
            ).data or []
        except Exception as e:
            logger.error("Error loading sessions for class %s: %s", cls["id"], e)
            details.errors.append(f"Class {cls['id']}: {e}")
            continue

        for schedule in schedules:
            for enrollment in enrollments:
                result = send_class_reminder(db, enrollment["student_id"], cls, schedule)
                if result.sent:
                    details.class_reminders += 1
                elif result.detail:
                    details.errors.append(f"Class reminder {schedule['id']}/{enrollment['student_id']}: {result.detail}")

    try:
        makeups = (
            db.table("makeup_classes")
            .select("id, student_id")
            .eq("status", "scheduled")
            .gte("makeup_date", tomorrow)
            .lt("makeup_date", day_after)
            .execute()
        ).data or []
    except Exception as e:
        logger.error("Error fetching makeup classes: %s", e)
        details.errors.append(f"Makeup lookup error: {e}")
        makeups = []

    for makeup in makeups:
        result = send_makeup_notification(db, makeup["id"], "reminder")
        if result.sent:
            details.makeup_reminders += 1
        elif result.detail:
            details.errors.append(f"Makeup reminder {makeup['id']}: {result.detail}")

    sent = details.class_reminders + details.makeup_reminders
    logger.info("=== Reminder cron job completed: sent=%s errors=%s ===", sent, len(details.errors))

    return ReminderResponse(
        message=f"Sent {sent} reminders",
        sent_count=sent,
        details=details,
        timestamp=now.isoformat(),
    )
