import logging
from fastapi import Depends, HTTPException, status, Query
from supabase import Client

from schoolops.db.supabase import get_supabase

logger = logging.getLogger(__name__)

# Single source of truth for what each staff role may do.
ROLE_CAPABILITIES = {
    "super_admin": {
        "makeup.view",
        "makeup.manage",
        "attendance.view",
        "attendance.manage",
    },
    "branch_admin": {
        "makeup.view",
        "makeup.manage",
        "attendance.view",
        "attendance.manage",
    },
    "teacher": {
        "makeup.view",
        "attendance.view",
        "attendance.manage",
    },
}


def has_capability(role: str, capability: str) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, set())


def get_staff_user(user_id: str, db: Client) -> dict:
    """
    Fetch an active staff account from admin_users.

    Raises:
        HTTPException: 403 if the account is missing or inactive, 500 on lookup failure
    """
    try:
        result = (
            db.table("admin_users")
            .select("id, role, display_name, branch_ids, is_active")
            .eq("id", user_id)
            .execute()
        )
    except Exception:
        logger.exception("Failed to look up staff user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify staff access"
        )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff user not found"
        )

    user = result.data[0]
    if user.get("is_active") is False:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff account is disabled"
        )
    return user


def require_capability(capability: str):
    """
    Dependency factory: resolves ?user_id= to a staff account and checks
    that its role grants `capability`.
    """
    def capability_checker(
        user_id: str = Query(..., description="Staff user ID"),
        db: Client = Depends(get_supabase),
    ) -> dict:
        user = get_staff_user(user_id, db)
        if not has_capability(user.get("role", ""), capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Missing permission: {capability}"
            )
        return user
    return capability_checker
