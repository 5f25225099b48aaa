"""
Parent notifications over the LINE Messaging API.

Every function here is a secondary side effect: it reports failure through
a NotificationResult and never raises into the calling request handler.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from supabase import Client

from schoolops.core import clock, line_client
from schoolops.core.line_client import LineApiError, mask_user_id

logger = logging.getLogger(__name__)

LINE_SETTINGS_KEY = "line"

PARENT_NOT_CONNECTED = "parent_not_connected"
NOTIFICATIONS_DISABLED = "notifications_disabled"
MISSING_ACCESS_TOKEN = "missing_access_token"
STUDENT_NOT_FOUND = "student_not_found"
MAKEUP_NOT_SCHEDULED = "makeup_not_scheduled"
SEND_FAILED = "send_failed"


@dataclass
class NotificationResult:
    sent: bool
    error: Optional[str] = None
    detail: Optional[str] = None


def get_line_settings(db: Client) -> dict:
    """Messaging credentials live in settings.value where key = 'line'."""
    defaults = {"access_token": None, "enabled": True}
    try:
        result = db.table("settings").select("*").eq("key", LINE_SETTINGS_KEY).execute()
    except Exception as e:
        logger.error("Error getting LINE settings: %s", e)
        return defaults

    if not result.data:
        return defaults

    value = result.data[0].get("value") or {}
    return {
        "access_token": value.get("messagingChannelAccessToken"),
        "enabled": value.get("enableNotifications") is not False,
    }


def log_notification(db: Client, **fields) -> None:
    """Insert a notification_logs row; failures are only logged."""
    row = {key: value for key, value in fields.items() if value is not None}
    row.setdefault("recipient_type", "parent")
    row.setdefault("sent_at", clock.now().isoformat())
    try:
        db.table("notification_logs").insert(row).execute()
    except Exception as e:
        logger.error("[log_notification] Error saving log: %s", e)


def send_line_text(db: Client, line_user_id: str, text: str) -> NotificationResult:
    line_settings = get_line_settings(db)

    if not line_settings["enabled"]:
        logger.info("[send_line_text] Notifications are disabled")
        return NotificationResult(sent=False, error=NOTIFICATIONS_DISABLED)

    if not line_settings["access_token"]:
        logger.warning("[send_line_text] No channel access token configured")
        return NotificationResult(sent=False, error=MISSING_ACCESS_TOKEN)

    try:
        line_client.push_text(line_settings["access_token"], line_user_id, text)
    except LineApiError as e:
        return NotificationResult(sent=False, error=SEND_FAILED, detail=str(e))

    return NotificationResult(sent=True)


def format_date(value) -> str:
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return value.strftime("%A %d %B %Y")


def format_time(value: Optional[str]) -> str:
    # "14:30:00" -> "14:30"
    return value[:5] if value else ""


def _fetch_one(db: Client, table: str, columns: str, row_id: Optional[str]) -> Optional[dict]:
    if not row_id:
        return None
    result = db.table(table).select(columns).eq("id", row_id).limit(1).execute()
    return result.data[0] if result.data else None


def _display_name(row: Optional[dict], fallback: str = "") -> str:
    if not row:
        return fallback
    return row.get("nickname") or row.get("name") or fallback


def compose_makeup_message(
    kind: str,
    student_name: str,
    class_name: str,
    session_number: Optional[int],
    makeup_date,
    start_time: str,
    end_time: str,
    teacher_name: str,
    branch_name: str,
    room_name: str,
) -> str:
    if kind == "reminder":
        header = f"Reminder: makeup class tomorrow for {student_name}"
    else:
        header = f"Makeup class confirmed for {student_name}"

    lines = [header, "", f"Class: {class_name}"]
    if session_number:
        lines.append(f"Replaces session: #{session_number}")
    lines.append(f"Date: {format_date(makeup_date)}")
    lines.append(f"Time: {format_time(start_time)} - {format_time(end_time)}")
    lines.append(f"Teacher: {teacher_name or 'TBA'}")
    if branch_name:
        lines.append(f"Branch: {branch_name}")
    if room_name:
        lines.append(f"Room: {room_name}")
    return "\n".join(lines)


def send_makeup_notification(db: Client, makeup_id: str, kind: str = "scheduled") -> NotificationResult:
    """
    Tell the parent about a scheduled makeup window.

    `kind` is "scheduled" (sent right after staff assign a window) or
    "reminder" (sent by the reminders cron the day before).
    """
    logger.info("[send_makeup_notification] makeup=%s kind=%s", makeup_id, kind)
    try:
        makeup = _fetch_one(db, "makeup_classes", "*", makeup_id)
        if not makeup or not makeup.get("makeup_date") or not makeup.get("makeup_start_time"):
            logger.info("[send_makeup_notification] Makeup %s has no schedule", makeup_id)
            return NotificationResult(sent=False, error=MAKEUP_NOT_SCHEDULED)

        student = _fetch_one(db, "students", "id, name, nickname, parent_id", makeup.get("student_id"))
        if not student:
            logger.info("[send_makeup_notification] Student not found")
            return NotificationResult(sent=False, error=STUDENT_NOT_FOUND)

        parent_id = makeup.get("parent_id") or student.get("parent_id")
        parent = _fetch_one(db, "parents", "id, display_name, line_user_id", parent_id)
        if not parent or not parent.get("line_user_id"):
            logger.info("[send_makeup_notification] Parent not found or no LINE ID")
            return NotificationResult(sent=False, error=PARENT_NOT_CONNECTED)

        class_row = _fetch_one(db, "classes", "id, name", makeup.get("original_class_id"))
        teacher = _fetch_one(db, "teachers", "id, name, nickname", makeup.get("makeup_teacher_id"))
        branch = _fetch_one(db, "branches", "id, name", makeup.get("makeup_branch_id"))
        room = _fetch_one(db, "rooms", "id, name", makeup.get("makeup_room_id"))

        student_name = _display_name(student)
        class_name = class_row["name"] if class_row else "Makeup Class"
        text = compose_makeup_message(
            kind,
            student_name=student_name,
            class_name=class_name,
            session_number=makeup.get("original_session_number"),
            makeup_date=makeup["makeup_date"],
            start_time=makeup.get("makeup_start_time"),
            end_time=makeup.get("makeup_end_time"),
            teacher_name=_display_name(teacher),
            branch_name=branch["name"] if branch else "",
            room_name=room["name"] if room else (makeup.get("makeup_room_id") or ""),
        )
    except Exception as e:
        logger.exception("[send_makeup_notification] Error collecting data")
        return NotificationResult(sent=False, error=SEND_FAILED, detail=str(e))

    logger.info("[send_makeup_notification] Sending to %s", mask_user_id(parent["line_user_id"]))
    result = send_line_text(db, parent["line_user_id"], text)

    log_notification(
        db,
        type="makeup-reminder" if kind == "reminder" else "makeup-scheduled",
        recipient_id=parent["id"],
        recipient_name=parent.get("display_name"),
        line_user_id=parent["line_user_id"],
        student_id=student["id"],
        student_name=student_name,
        class_id=makeup.get("original_class_id"),
        class_name=class_name,
        makeup_id=makeup_id,
        message_preview=text.split("\n")[0],
        status="success" if result.sent else "failed",
        error_message=result.detail or result.error,
    )
    return result


def send_class_reminder(db: Client, student_id: str, class_row: dict, schedule: dict) -> NotificationResult:
    """Day-before reminder for a regular class session."""
    try:
        student = _fetch_one(db, "students", "id, name, nickname, parent_id", student_id)
        if not student:
            return NotificationResult(sent=False, error=STUDENT_NOT_FOUND)

        parent = _fetch_one(db, "parents", "id, display_name, line_user_id", student.get("parent_id"))
        if not parent or not parent.get("line_user_id"):
            return NotificationResult(sent=False, error=PARENT_NOT_CONNECTED)
    except Exception as e:
        logger.exception("[send_class_reminder] Error collecting data")
        return NotificationResult(sent=False, error=SEND_FAILED, detail=str(e))

    student_name = _display_name(student)
    lines = [
        f"Reminder: class tomorrow for {student_name}",
        "",
        f"Class: {class_row.get('name', '')}",
    ]
    if schedule.get("session_number"):
        lines.append(f"Session: #{schedule['session_number']}")
    lines.append(f"Date: {format_date(schedule['session_date'])}")
    if class_row.get("start_time"):
        lines.append(f"Time: {format_time(class_row.get('start_time'))} - {format_time(class_row.get('end_time'))}")
    text = "\n".join(lines)

    result = send_line_text(db, parent["line_user_id"], text)

    log_notification(
        db,
        type="class-reminder",
        recipient_id=parent["id"],
        recipient_name=parent.get("display_name"),
        line_user_id=parent["line_user_id"],
        student_id=student["id"],
        student_name=student_name,
        class_id=class_row.get("id"),
        class_name=class_row.get("name"),
        schedule_id=schedule.get("id"),
        message_preview=lines[0],
        status="success" if result.sent else "failed",
        error_message=result.detail or result.error,
    )
    return result
