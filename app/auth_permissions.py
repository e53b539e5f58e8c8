"""
Authorization Module

Request authentication for the Onboardly API.
Every console record is owned by the signed-in vendor; the auth context
carries that owner id into each route.
"""

import uuid
import logging
import functools
from typing import Dict, Any, Optional, Callable
from datetime import datetime, timedelta

from fastapi import HTTPException, Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.supabase_client import verify_supabase_token

logger = logging.getLogger(__name__)


# =============================================================================
# AUTHORIZATION CONTEXT
# =============================================================================

class AuthContext:
    """
    Authorization context for a request.
    Contains the owner id used to scope every record query.
    """
    def __init__(
        self,
        user_id: str,
        email: Optional[str] = None,
        role: Optional[str] = None,
        token: Optional[str] = None,
        request_id: Optional[str] = None
    ):
        self.user_id = user_id
        self.email = email
        self.role = role
        self.token = token
        self.request_id = request_id or str(uuid.uuid4())[:8]

    def to_user(self) -> Dict[str, Any]:
        return {"id": self.user_id, "email": self.email, "role": self.role}

    def to_log_context(self) -> Dict[str, Any]:
        """Return context suitable for logging"""
        return {
            "user_id": self.user_id,
            "role": self.role,
            "request_id": self.request_id,
        }


# =============================================================================
# AUTHENTICATION HELPERS
# =============================================================================

security = HTTPBearer(auto_error=False)


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AuthContext:
    """
    Extract and validate authentication, returning an AuthContext.
    This is the primary auth dependency for console endpoints.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

    token = credentials.credentials if credentials else None
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    user = verify_supabase_token(token)
    if not user:
        logger.warning(f"[Auth] Token rejected (request_id={request_id})")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return AuthContext(
        user_id=user.get("id"),
        email=user.get("email"),
        role=user.get("role"),
        token=token,
        request_id=request_id
    )


async def get_optional_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Optional[AuthContext]:
    """
    Like get_auth_context but returns None instead of raising for unauthenticated requests.
    """
    try:
        return await get_auth_context(request, credentials)
    except HTTPException:
        return None


# =============================================================================
# RATE LIMITING
# =============================================================================

_rate_limit_cache: Dict[str, Dict[str, Any]] = {}

RATE_LIMITS = {
    "concierge": {"max_requests": 20, "window_minutes": 1},
    "ai_summary": {"max_requests": 5, "window_minutes": 1},
    "reminder": {"max_requests": 10, "window_minutes": 1},
    "default": {"max_requests": 60, "window_minutes": 1},
}


def check_rate_limit(subject: str, endpoint: str) -> bool:
    """
    Check if request is within rate limits.
    Returns True if allowed, raises HTTPException if rate limited.
    """
    limit_config = RATE_LIMITS.get(endpoint, RATE_LIMITS["default"])
    max_requests = limit_config["max_requests"]
    window_minutes = limit_config["window_minutes"]

    cache_key = f"{subject}:{endpoint}"
    now = datetime.utcnow()
    window_start = now - timedelta(minutes=window_minutes)
    evict_expired_windows(now)

    entry = _rate_limit_cache.get(cache_key)
    if entry and entry["window_start"] > window_start:
        if entry["count"] >= max_requests:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {max_requests} requests per {window_minutes} minute(s)."
            )
        entry["count"] += 1
    else:
        _rate_limit_cache[cache_key] = {"window_start": now, "count": 1, "endpoint": endpoint}

    return True


def evict_expired_windows(now: Optional[datetime] = None) -> int:
    """Drop cache entries whose window has closed. Returns how many were removed."""
    now = now or datetime.utcnow()
    expired = []
    for key, entry in _rate_limit_cache.items():
        limit_config = RATE_LIMITS.get(entry.get("endpoint"), RATE_LIMITS["default"])
        if entry["window_start"] <= now - timedelta(minutes=limit_config["window_minutes"]):
            expired.append(key)
    for key in expired:
        del _rate_limit_cache[key]
    return len(expired)


def reset_rate_limits():
    _rate_limit_cache.clear()


def rate_limit(endpoint: str):
    """Decorator to apply rate limiting to an endpoint"""
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            auth: AuthContext = kwargs.get("auth")
            if auth:
                check_rate_limit(auth.user_id, endpoint)
            return await func(*args, **kwargs)
        return wrapper
    return decorator


# =============================================================================
# LOGGING HELPERS
# =============================================================================

def log_ai_call(
    subject: str,
    model_name: str,
    purpose: str,
    duration_ms: float,
    success: bool,
    error: Optional[str] = None
):
    """Log AI/LLM call with telemetry"""
    log_data = {
        "type": "ai_call",
        "subject": subject,
        "model_name": model_name,
        "purpose": purpose,
        "duration_ms": round(duration_ms, 2),
        "success": success,
        "timestamp": datetime.utcnow().isoformat(),
    }
    if error:
        log_data["error"] = error

    if success:
        logger.info(f"AI Call: {log_data}")
    else:
        logger.error(f"AI Error: {log_data}")
