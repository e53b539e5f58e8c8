from fastapi import HTTPException
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def require_db(supabase):
    """Raise 503 when the Supabase client is not configured."""
    if not supabase:
        raise HTTPException(status_code=503, detail="Database not available")
    return supabase


def fetch_one(supabase, table: str, record_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Fetch a single row by id, optionally scoped to its owner."""
    query = supabase.table(table).select("*").eq("id", record_id)
    if user_id is not None:
        query = query.eq("user_id", user_id)
    result = query.limit(1).execute()
    return result.data[0] if result.data else None


def fetch_owned(supabase, table: str, record_id: str, user_id: str, label: str) -> Dict[str, Any]:
    """Fetch a row owned by user_id; a missing or foreign row is a 404."""
    row = fetch_one(supabase, table, record_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row


def count_rows(supabase, table: str, column: str, value: str) -> int:
    result = supabase.table(table).select("id").eq(column, value).execute()
    return len(result.data or [])


def name_lookup(rows: List[Dict[str, Any]], field: str = "name") -> Dict[str, Any]:
    return {row["id"]: row.get(field) for row in rows}
