"""
Progress Routes

Admin-side view and edits of per-customer, per-step progress.
"""

import logging
from typing import List, Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context
from app.router_utils import require_db, fetch_owned, utc_now_iso
from app.schemas import CustomerProgress, FlowProgressSummary, ProgressStatus, ProgressUpdate
from app.progress_engine import customer_flow_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["progress"])


def find_progress_row(supabase, customer_id: str, flow_id: str, step_id: str) -> Optional[Dict[str, Any]]:
    result = supabase.table("customer_progress")\
        .select("*")\
        .eq("customer_id", customer_id)\
        .eq("flow_id", flow_id)\
        .eq("step_id", step_id)\
        .order("updated_at", desc=True)\
        .limit(1)\
        .execute()
    return result.data[0] if result.data else None


def write_progress(
    supabase,
    owner_id: str,
    customer_id: str,
    flow_id: str,
    step_id: str,
    status: str,
    notes: Optional[str] = None,
    existing: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create or update the progress row for one customer/flow/step."""
    now = utc_now_iso()
    values = {
        "status": status,
        "completed_at": now if status == ProgressStatus.COMPLETED.value else None,
        "updated_at": now,
    }
    if notes is not None:
        values["notes"] = notes

    if existing:
        if existing.get("status") == status == ProgressStatus.COMPLETED.value:
            values["completed_at"] = existing.get("completed_at") or now
        result = supabase.table("customer_progress")\
            .update(values)\
            .eq("id", existing["id"])\
            .execute()
        return result.data[0] if result.data else {**existing, **values}

    result = supabase.table("customer_progress").insert({
        "user_id": owner_id,
        "customer_id": customer_id,
        "flow_id": flow_id,
        "step_id": step_id,
        "created_at": now,
        **values,
    }).execute()
    return result.data[0]


@router.get("/customers/{customer_id}/progress", response_model=List[FlowProgressSummary])
async def get_customer_progress(customer_id: str, auth: AuthContext = Depends(get_auth_context)):
    """Progress summary for every flow of the customer's company."""
    supabase = require_db(get_supabase())
    customer = fetch_owned(supabase, "customers", customer_id, auth.user_id, "Customer")

    try:
        flows = supabase.table("onboarding_flows")\
            .select("*")\
            .eq("company_id", customer["company_id"])\
            .eq("user_id", auth.user_id)\
            .order("created_at", desc=True)\
            .execute().data or []
        flow_ids = [f["id"] for f in flows]
        steps = []
        if flow_ids:
            steps = supabase.table("steps").select("*").in_("flow_id", flow_ids).execute().data or []
        progress = supabase.table("customer_progress")\
            .select("*")\
            .eq("customer_id", customer_id)\
            .execute().data or []
    except Exception as e:
        logger.error(f"Failed to load progress for customer {customer_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load progress")

    return [
        customer_flow_progress(
            [s for s in steps if s.get("flow_id") == flow["id"]],
            [p for p in progress if p.get("flow_id") == flow["id"]],
            flow
        )
        for flow in flows
    ]


@router.put("/progress", response_model=CustomerProgress)
async def set_progress(payload: ProgressUpdate, auth: AuthContext = Depends(get_auth_context)):
    """Set an explicit status for one customer/flow/step."""
    supabase = require_db(get_supabase())
    customer = fetch_owned(supabase, "customers", payload.customer_id, auth.user_id, "Customer")
    flow = fetch_owned(supabase, "onboarding_flows", payload.flow_id, auth.user_id, "Flow")
    step = fetch_owned(supabase, "steps", payload.step_id, auth.user_id, "Step")

    if flow.get("company_id") != customer.get("company_id") or step.get("flow_id") != flow["id"]:
        raise HTTPException(status_code=400, detail="Step is not part of a flow assigned to this customer")

    try:
        existing = find_progress_row(supabase, payload.customer_id, payload.flow_id, payload.step_id)
        return write_progress(
            supabase,
            auth.user_id,
            payload.customer_id,
            payload.flow_id,
            payload.step_id,
            payload.status.value,
            notes=payload.notes,
            existing=existing
        )
    except Exception as e:
        logger.error(f"Failed to update progress: {e}")
        raise HTTPException(status_code=500, detail="Failed to update progress")
