"""
Auth Routes

Session state for the console shell and sign-out.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from app.supabase_client import get_supabase, get_user_profile
from app.auth_permissions import AuthContext, get_auth_context, get_optional_auth_context
from app.schemas import SessionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/session", response_model=SessionState)
async def get_session(auth: Optional[AuthContext] = Depends(get_optional_auth_context)):
    """Current user and session state; anonymous callers get is_authenticated=false."""
    if auth is None:
        return SessionState(user=None, is_authenticated=False)

    return SessionState(
        user=auth.to_user(),
        is_authenticated=True,
        profile=get_user_profile(auth.user_id),
    )


@router.post("/logout")
async def logout(auth: AuthContext = Depends(get_auth_context)):
    """Revoke the caller's session in Supabase Auth."""
    supabase = get_supabase()
    if not supabase:
        raise HTTPException(status_code=503, detail="Database not available")

    try:
        supabase.auth.admin.sign_out(auth.token)
    except Exception as e:
        logger.error(f"Failed to sign out user {auth.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to sign out")

    logger.info(f"User signed out: {auth.user_id}")
    return {"success": True}
