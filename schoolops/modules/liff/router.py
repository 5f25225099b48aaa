import logging
from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from schoolops.core import clock
from schoolops.core.config import settings
from schoolops.core.errors import bad_request, not_found, internal_error, is_unique_violation
from schoolops.db.supabase import get_supabase
from schoolops.modules.makeup.helpers import (
    compute_quota,
    delete_attendance,
    find_active_makeup,
    get_class_branch_id,
    get_makeup,
    upsert_attendance,
)
from schoolops.schemas.liff import (
    LeaveRequestCreate,
    LeaveRequestResponse,
    CancelLeaveRequest,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["LIFF"])

LIFF_CHANNEL = "parent-liff"
DEFAULT_LEAVE_REASON = "Leave requested via LINE"
ATTENDANCE_NOTE = "Leave requested via LINE"


@router.post("/leave-request", response_model=LeaveRequestResponse)
def create_leave_request(request: LeaveRequestCreate, db: Client = Depends(get_supabase)):
    """
    Parent self-service leave for one upcoming session.

    Creates a pending makeup request and marks the student absent for the
    session. Rejected when the session is in the past, already covered by
    an open makeup, or when the class's makeup quota is used up.
    """
    if not request.student_id or not request.class_id or not request.schedule_id:
        raise bad_request("Incomplete request")

    try:
        enrollment = (
            db.table("enrollments")
            .select("id, parent_id")
            .eq("student_id", request.student_id)
            .eq("class_id", request.class_id)
            .eq("status", "active")
            .limit(1)
            .execute()
        )
        if not enrollment.data:
            raise not_found("Enrollment not found")
        parent_id = enrollment.data[0].get("parent_id")

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

        now = clock.now()
        session_at = clock.parse_moment(schedule.get("session_date"))
        if session_at is None or session_at <= now:
            raise bad_request("Cannot request leave retroactively")

        if find_active_makeup(db, request.student_id, request.class_id, request.schedule_id):
            raise bad_request("Leave already requested for this session")

        quota = compute_quota(db, request.student_id, request.class_id)
        limit = settings.MAKEUP_QUOTA
        logger.info(
            "[Leave Request] Quota check - Scheduled: %s, Absences: %s, Total: %s/%s",
            quota["scheduled"], quota["absences"], quota["total"], limit,
        )
        if quota["total"] >= limit:
            raise bad_request(
                f"Makeup quota exceeded: {quota['total']}/{limit} "
                f"(leave {quota['scheduled']} + absent {quota['absences']})",
                quotaDetails={**quota, "limit": limit},
            )

        makeup_data = {
            "type": request.type or "scheduled",
            "original_class_id": request.class_id,
            "original_schedule_id": request.schedule_id,
            "student_id": request.student_id,
            "parent_id": parent_id,
            "branch_id": get_class_branch_id(db, request.class_id),
            "requested_by": LIFF_CHANNEL,
            "request_date": now.isoformat(),
            "reason": request.reason or DEFAULT_LEAVE_REASON,
            "status": "pending",
            "original_session_number": schedule.get("session_number") or 0,
            "original_session_date": schedule.get("session_date"),
        }
        try:
            result = db.table("makeup_classes").insert(makeup_data).execute()
        except Exception as insert_error:
            # Partial unique index on open makeups: a racing request got there first
            if is_unique_violation(insert_error):
                raise bad_request("Leave already requested for this session")
            raise
        makeup_id = result.data[0]["id"]

        try:
            upsert_attendance(db, request.schedule_id, request.student_id, {
                "status": "absent",
                "note": ATTENDANCE_NOTE,
                "checked_at": now.isoformat(),
                "checked_by": LIFF_CHANNEL,
            })
        except Exception as attendance_error:
            logger.error(
                "[Leave Request] Makeup %s created but attendance sync failed: %s",
                makeup_id, attendance_error,
            )

        # Recount so the reply matches what the next request will see:
        # a "scheduled" leave counts as a makeup, an "ad-hoc" one as an absence
        try:
            quota = compute_quota(db, request.student_id, request.class_id)
        except Exception as recount_error:
            logger.error("[Leave Request] Quota recount failed: %s", recount_error)
            quota = {**quota, "total": quota["total"] + 1}
        logger.info(
            "[Leave Request] Created makeup request %s for student %s (Total used: %s/%s)",
            makeup_id, request.student_id, quota["total"], limit,
        )

        return LeaveRequestResponse(
            message="Leave request recorded",
            makeup_id=makeup_id,
            quota_used=quota["total"],
            quota_limit=limit,
            quota_details=quota,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[Leave Request] Error")
        raise internal_error("Internal server error", e)


@router.post("/cancel-leave", response_model=MessageResponse)
def cancel_leave(request: CancelLeaveRequest, db: Client = Depends(get_supabase)):
    """
    Withdraw a pending leave request before the session takes place.
    """
    if not request.makeup_id or not request.student_id or not request.class_id or not request.schedule_id:
        raise bad_request("Incomplete request")

    try:
        makeup = get_makeup(db, request.makeup_id)
        if (
            not makeup
            or makeup.get("student_id") != request.student_id
            or makeup.get("original_class_id") != request.class_id
            or makeup.get("original_schedule_id") != request.schedule_id
        ):
            raise not_found("Leave request not found")

        if makeup.get("status") != "pending":
            raise bad_request("Makeup class already scheduled, cannot cancel")

        now = clock.now()
        original_at = clock.parse_moment(makeup.get("original_session_date")) or now
        if original_at < now:
            raise bad_request("Cannot cancel leave retroactively")

        db.table("makeup_classes").delete().eq("id", request.makeup_id).execute()

        try:
            delete_attendance(db, makeup["original_schedule_id"], request.student_id)
        except Exception as attendance_error:
            logger.error("[Cancel Leave] Error removing attendance: %s", attendance_error)

        logger.info("[Cancel Leave] Cancelled makeup request %s for student %s", request.makeup_id, request.student_id)
        return MessageResponse(message="Leave request cancelled")

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[Cancel Leave] Error")
        raise internal_error("Internal server error", e)
