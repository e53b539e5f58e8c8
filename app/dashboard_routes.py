"""
Dashboard Routes

Aggregate counts, completion rate, recent activity, per-flow funnels and
an AI-written narrative summary for the vendor's home screen.
"""

import logging
from typing import List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context, rate_limit
from app.router_utils import require_db, fetch_owned
from app.schemas import DashboardStats, DashboardInsights, FlowFunnel
from app.progress_engine import completion_rate, recent_activity, flow_funnel
from app import concierge_agent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _load_owner_data(supabase, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
    """Load every collection the dashboard aggregates over."""
    data = {}
    for key, table in (
        ("companies", "companies"),
        ("customers", "customers"),
        ("flows", "onboarding_flows"),
        ("steps", "steps"),
        ("progress", "customer_progress"),
    ):
        data[key] = supabase.table(table).select("*").eq("user_id", user_id).execute().data or []
    return data


def _build_stats(data: Dict[str, List[Dict[str, Any]]], activity_limit: int) -> Dict[str, Any]:
    return {
        "companies": len(data["companies"]),
        "customers": len(data["customers"]),
        "flows": len(data["flows"]),
        "active_flows": sum(1 for f in data["flows"] if f.get("is_active", True)),
        "completion_rate": completion_rate(data["customers"], data["flows"], data["steps"], data["progress"]),
        "recent_activity": recent_activity(data["progress"], data["customers"], data["steps"], activity_limit),
    }


def _build_funnels(data: Dict[str, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [
        flow_funnel(
            flow,
            [s for s in data["steps"] if s.get("flow_id") == flow["id"]],
            data["customers"],
            data["progress"]
        )
        for flow in data["flows"]
        if flow.get("is_active", True)
    ]


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    activity_limit: int = Query(default=10, ge=0, le=100),
    auth: AuthContext = Depends(get_auth_context)
):
    supabase = require_db(get_supabase())

    try:
        data = _load_owner_data(supabase, auth.user_id)
    except Exception as e:
        logger.error(f"Failed to load stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to load stats")

    return _build_stats(data, activity_limit)


@router.get("/flows/{flow_id}/funnel", response_model=FlowFunnel)
async def get_flow_funnel(flow_id: str, auth: AuthContext = Depends(get_auth_context)):
    """Per-step completion and drop-off for one flow."""
    supabase = require_db(get_supabase())
    flow = fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    try:
        steps = supabase.table("steps").select("*").eq("flow_id", flow_id).execute().data or []
        customers = supabase.table("customers")\
            .select("*")\
            .eq("company_id", flow["company_id"])\
            .eq("user_id", auth.user_id)\
            .execute().data or []
        progress = supabase.table("customer_progress").select("*").eq("flow_id", flow_id).execute().data or []
    except Exception as e:
        logger.error(f"Failed to load funnel for flow {flow_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load funnel")

    return flow_funnel(flow, steps, customers, progress)


@router.post("/insights", response_model=DashboardInsights)
@rate_limit("ai_summary")
async def generate_dashboard_insights(auth: AuthContext = Depends(get_auth_context)):
    """Narrative summary and drop-off analysis of the owner's onboarding."""
    supabase = require_db(get_supabase())

    try:
        data = _load_owner_data(supabase, auth.user_id)
    except Exception as e:
        logger.error(f"Failed to load stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to load stats")

    stats = _build_stats(data, 10)
    funnels = _build_funnels(data)
    summary, ai_generated = concierge_agent.generate_insights(stats, funnels, auth.user_id)

    return {
        "summary": summary,
        "ai_generated": ai_generated,
        "stats": stats,
        "funnels": funnels,
    }
