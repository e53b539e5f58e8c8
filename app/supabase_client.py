import os
import logging
from supabase import create_client, Client
from dotenv import load_dotenv
from jose import jwt, JWTError
from typing import Optional

logger = logging.getLogger(__name__)

load_dotenv()

SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")  # Service role: the portal reads without a session
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY")
SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET")

supabase: Client | None = None
supabase_error: str | None = None

if not SUPABASE_URL:
    supabase_error = "SUPABASE_URL not set. Supabase features will be disabled."
    logger.warning(supabase_error)
else:
    key_to_use = SUPABASE_KEY or SUPABASE_ANON_KEY
    if key_to_use:
        try:
            supabase = create_client(SUPABASE_URL, key_to_use)
        except Exception as e:
            supabase_error = f"Failed to initialize Supabase client: {e}"
            logger.error(supabase_error)
    else:
        supabase_error = "No Supabase key found. Supabase features will be disabled."
        logger.warning(supabase_error)


def get_supabase() -> Client | None:
    """Get the Supabase client instance."""
    return supabase


def _user_from_claims(claims: dict) -> Optional[dict]:
    user_id = claims.get("sub")
    if not user_id:
        logger.info("[Auth] No user_id (sub) in token claims")
        return None
    return {
        "id": user_id,
        "email": claims.get("email"),
        "role": claims.get("role", "authenticated"),
    }


def verify_supabase_token(token: str) -> Optional[dict]:
    """
    Verify a Supabase access token and return the user data.

    With SUPABASE_JWT_SECRET configured the signature is checked locally,
    otherwise Supabase Auth is asked to resolve the token.
    Returns None if verification fails.
    """
    if not token:
        return None

    if SUPABASE_JWT_SECRET:
        try:
            claims = jwt.decode(
                token,
                SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                audience="authenticated",
            )
            return _user_from_claims(claims)
        except JWTError as e:
            logger.info(f"[Auth] JWT verification failed: {e}")
            return None

    client = get_supabase()
    if not client:
        logger.warning("[Auth] Cannot verify token: Supabase not configured")
        return None

    try:
        user_response = client.auth.get_user(token)
        if user_response and user_response.user:
            user = user_response.user
            return {
                "id": user.id,
                "email": user.email,
                "role": getattr(user, "role", None) or "authenticated",
            }
        return None
    except Exception as e:
        logger.warning(f"[Auth] Token verification failed: {e}")
        return None


def get_user_profile(user_id: str) -> dict | None:
    """Get user profile from Supabase."""
    client = get_supabase()
    if not client:
        return None

    try:
        response = client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        return response.data[0] if response.data else None
    except Exception as e:
        logger.error(f"Error fetching profile: {e}")
        return None
