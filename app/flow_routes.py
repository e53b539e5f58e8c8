"""
Onboarding Flow Routes

A flow is an ordered guide of steps defined per company.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context
from app.router_utils import require_db, fetch_owned, count_rows, name_lookup, utc_now_iso
from app.schemas import OnboardingFlow, FlowCreate, FlowUpdate, DeleteResponse
from app.progress_engine import order_steps

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/flows", tags=["flows"])


@router.get("", response_model=List[OnboardingFlow])
async def list_flows(
    company_id: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context)
):
    """List the owner's flows, newest first, with company name and step count."""
    supabase = require_db(get_supabase())

    try:
        query = supabase.table("onboarding_flows").select("*").eq("user_id", auth.user_id)
        if company_id:
            query = query.eq("company_id", company_id)
        flows = query.order("created_at", desc=True).execute().data or []
        companies = supabase.table("companies").select("id, name").eq("user_id", auth.user_id).execute().data or []
        steps = supabase.table("steps").select("id, flow_id").eq("user_id", auth.user_id).execute().data or []
    except Exception as e:
        logger.error(f"Failed to load flows: {e}")
        raise HTTPException(status_code=500, detail="Failed to load flows")

    company_names = name_lookup(companies)
    step_counts = {}
    for step in steps:
        step_counts[step["flow_id"]] = step_counts.get(step["flow_id"], 0) + 1

    return [
        {
            **flow,
            "company_name": company_names.get(flow.get("company_id")) or "Unknown",
            "step_count": step_counts.get(flow["id"], 0),
        }
        for flow in flows
    ]


@router.get("/{flow_id}")
async def get_flow(flow_id: str, auth: AuthContext = Depends(get_auth_context)):
    """Flow with its steps in order."""
    supabase = require_db(get_supabase())
    flow = fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    try:
        steps = supabase.table("steps")\
            .select("*")\
            .eq("flow_id", flow_id)\
            .order("step_order")\
            .execute()
    except Exception as e:
        logger.error(f"Failed to load steps for flow {flow_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load steps")

    ordered = order_steps(steps.data or [])
    return {"flow": {**flow, "step_count": len(ordered)}, "steps": ordered}


@router.post("", response_model=OnboardingFlow, status_code=201)
async def create_flow(payload: FlowCreate, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    company = fetch_owned(supabase, "companies", payload.company_id, auth.user_id, "Company")
    now = utc_now_iso()

    try:
        result = supabase.table("onboarding_flows").insert({
            "user_id": auth.user_id,
            "company_id": payload.company_id,
            "name": payload.name,
            "description": payload.description,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to create flow: {e}")
        raise HTTPException(status_code=500, detail="Failed to create flow")

    return {**result.data[0], "company_name": company.get("name"), "step_count": 0}


@router.patch("/{flow_id}", response_model=OnboardingFlow)
async def update_flow(flow_id: str, payload: FlowUpdate, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    flow = fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return flow
    updates["updated_at"] = utc_now_iso()

    try:
        result = supabase.table("onboarding_flows")\
            .update(updates)\
            .eq("id", flow_id)\
            .eq("user_id", auth.user_id)\
            .execute()
        return result.data[0] if result.data else {**flow, **updates}
    except Exception as e:
        logger.error(f"Failed to update flow {flow_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update flow")


@router.post("/{flow_id}/toggle-active")
async def toggle_flow_active(flow_id: str, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    flow = fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")
    is_active = not bool(flow.get("is_active", True))

    try:
        supabase.table("onboarding_flows")\
            .update({"is_active": is_active, "updated_at": utc_now_iso()})\
            .eq("id", flow_id)\
            .eq("user_id", auth.user_id)\
            .execute()
    except Exception as e:
        logger.error(f"Failed to toggle flow {flow_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update flow")

    return {
        "id": flow_id,
        "is_active": is_active,
        "message": "Flow activated" if is_active else "Flow deactivated",
    }


@router.delete("/{flow_id}", response_model=DeleteResponse)
async def delete_flow(flow_id: str, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    try:
        dependents = {"steps": count_rows(supabase, "steps", "flow_id", flow_id)}
        supabase.table("onboarding_flows")\
            .delete()\
            .eq("id", flow_id)\
            .eq("user_id", auth.user_id)\
            .execute()
    except Exception as e:
        logger.error(f"Failed to delete flow {flow_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete flow")

    return DeleteResponse(success=True, id=flow_id, dependents=dependents)
