"""
Customer Portal Routes

Public, token-less view of one customer's onboarding flow. Customers reach it
through the link ?c=<customer_id>&f=<flow_id>; reads go through the service
role client, so every lookup checks that the flow belongs to the customer's
company before anything is returned.
"""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, HTTPException, Query

from app.supabase_client import get_supabase
from app.auth_permissions import check_rate_limit
from app.router_utils import require_db, fetch_one
from app.schemas import PortalView, PortalToggleRequest, ConciergeRequest, ConciergeResponse
from app.progress_engine import order_steps, customer_flow_progress, toggle_status
from app.progress_routes import find_progress_row, write_progress
from app import concierge_agent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portal", tags=["portal"])

NOT_FOUND = "Onboarding not found"


def load_portal_context(supabase, customer_id: str, flow_id: str) -> Dict[str, Any]:
    """Load flow, customer, ordered steps and progress; 404 when the pair is not valid."""
    flow = fetch_one(supabase, "onboarding_flows", flow_id)
    customer = fetch_one(supabase, "customers", customer_id)

    if not flow or not customer:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    if flow.get("company_id") != customer.get("company_id") or not flow.get("is_active", True):
        raise HTTPException(status_code=404, detail=NOT_FOUND)

    steps = supabase.table("steps")\
        .select("*")\
        .eq("flow_id", flow_id)\
        .order("step_order")\
        .execute()
    progress = supabase.table("customer_progress")\
        .select("*")\
        .eq("customer_id", customer_id)\
        .eq("flow_id", flow_id)\
        .execute()

    return {
        "flow": flow,
        "customer": customer,
        "steps": order_steps(steps.data or []),
        "progress": progress.data or [],
    }


def build_portal_view(context: Dict[str, Any], selected_step_id: Optional[str] = None) -> Dict[str, Any]:
    steps = context["steps"]
    summary = customer_flow_progress(steps, context["progress"], context["flow"])
    step_ids = {s["id"] for s in steps}
    if selected_step_id not in step_ids:
        selected_step_id = steps[0]["id"] if steps else None

    return {
        "flow": context["flow"],
        "customer": context["customer"],
        "steps": steps,
        "progress": context["progress"],
        "selected_step_id": selected_step_id,
        "completed": summary["completed"],
        "total": summary["total"],
        "percent": summary["percent"],
    }


@router.get("", response_model=PortalView)
async def get_portal(
    c: Optional[str] = Query(None, description="Customer id"),
    f: Optional[str] = Query(None, description="Flow id"),
):
    """Render one customer's onboarding guide."""
    if not c or not f:
        raise HTTPException(status_code=400, detail="Both customer (c) and flow (f) are required")

    supabase = require_db(get_supabase())

    try:
        context = load_portal_context(supabase, c, f)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load portal data: {e}")
        raise HTTPException(status_code=500, detail="Failed to load your onboarding guide")

    return build_portal_view(context)


@router.post("/steps/{step_id}/toggle", response_model=PortalView)
async def toggle_step(step_id: str, payload: PortalToggleRequest):
    """Mark a step complete, or reopen it if it already is."""
    supabase = require_db(get_supabase())

    try:
        context = load_portal_context(supabase, payload.customer_id, payload.flow_id)
        if step_id not in {s["id"] for s in context["steps"]}:
            raise HTTPException(status_code=404, detail="Step not found")

        existing = find_progress_row(supabase, payload.customer_id, payload.flow_id, step_id)
        new_status = toggle_status(existing.get("status") if existing else None)
        write_progress(
            supabase,
            context["flow"]["user_id"],
            payload.customer_id,
            payload.flow_id,
            step_id,
            new_status,
            existing=existing
        )
        logger.info(f"Portal progress: customer={payload.customer_id} step={step_id} -> {new_status}")

        context = load_portal_context(supabase, payload.customer_id, payload.flow_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update progress: {e}")
        raise HTTPException(status_code=500, detail="Failed to update progress")

    return build_portal_view(context, selected_step_id=step_id)


@router.post("/concierge", response_model=ConciergeResponse)
async def concierge_chat(payload: ConciergeRequest):
    """Forward the conversation plus flow/step/progress context to the concierge model."""
    supabase = require_db(get_supabase())

    try:
        context = load_portal_context(supabase, payload.customer_id, payload.flow_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to load concierge context: {e}")
        raise HTTPException(status_code=500, detail="Failed to load your onboarding guide")

    # Only customers with a valid onboarding link get a limiter entry
    check_rate_limit(f"portal:{payload.customer_id}", "concierge")

    try:
        company = fetch_one(supabase, "companies", context["flow"]["company_id"])
    except Exception as e:
        logger.error(f"Failed to load concierge context: {e}")
        raise HTTPException(status_code=500, detail="Failed to load your onboarding guide")

    steps = context["steps"]
    summary = customer_flow_progress(steps, context["progress"], context["flow"])
    selected_step = next((s for s in steps if s["id"] == payload.selected_step_id), None)

    system_prompt = concierge_agent.build_concierge_prompt(
        context["flow"],
        steps,
        summary,
        customer=context["customer"],
        company_name=company.get("name") if company else None,
        selected_step=selected_step,
    )
    messages = [{"role": m.role, "content": m.content} for m in payload.messages]
    text = concierge_agent.get_chat_response(messages, system_prompt, subject=f"portal:{payload.customer_id}")

    return {"response": text, "ai_available": concierge_agent.is_available()}
