"""
Step Routes

Steps of a flow, ordered by a 1-based step_order. Reordering rewrites
every step_order so the sequence stays 1..n.
"""

import logging
from typing import List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context
from app.router_utils import require_db, fetch_owned, utc_now_iso
from app.schemas import Step, StepCreate, StepUpdate, StepMoveRequest, StepOrderRequest, DeleteResponse
from app.progress_engine import order_steps, move_step, renumber_steps, reorder_by_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["steps"])


def _load_steps(supabase, flow_id: str) -> List[Dict[str, Any]]:
    result = supabase.table("steps")\
        .select("*")\
        .eq("flow_id", flow_id)\
        .order("step_order")\
        .execute()
    return order_steps(result.data or [])


def _persist_order(supabase, steps: List[Dict[str, Any]]):
    for step in steps:
        supabase.table("steps")\
            .update({"step_order": step["step_order"]})\
            .eq("id", step["id"])\
            .execute()


@router.get("/flows/{flow_id}/steps", response_model=List[Step])
async def list_steps(flow_id: str, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    try:
        return _load_steps(supabase, flow_id)
    except Exception as e:
        logger.error(f"Failed to load steps: {e}")
        raise HTTPException(status_code=500, detail="Failed to load steps")


@router.post("/flows/{flow_id}/steps", response_model=Step, status_code=201)
async def create_step(flow_id: str, payload: StepCreate, auth: AuthContext = Depends(get_auth_context)):
    """Append a step to the end of the flow."""
    supabase = require_db(get_supabase())
    fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")
    now = utc_now_iso()

    try:
        existing = _load_steps(supabase, flow_id)
        result = supabase.table("steps").insert({
            "user_id": auth.user_id,
            "flow_id": flow_id,
            "title": payload.title,
            "description": payload.description,
            "content": payload.content,
            "estimated_time": payload.estimated_time,
            "step_order": len(existing) + 1,
            "created_at": now,
            "updated_at": now,
        }).execute()
        return result.data[0]
    except Exception as e:
        logger.error(f"Failed to save step: {e}")
        raise HTTPException(status_code=500, detail="Failed to save step")


@router.patch("/steps/{step_id}", response_model=Step)
async def update_step(step_id: str, payload: StepUpdate, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    step = fetch_owned(supabase, "steps", step_id, auth.user_id, "Step")

    updates = {
        "title": payload.title,
        "description": payload.description,
        "content": payload.content,
        "estimated_time": payload.estimated_time,
        "updated_at": utc_now_iso(),
    }

    try:
        result = supabase.table("steps")\
            .update(updates)\
            .eq("id", step_id)\
            .eq("user_id", auth.user_id)\
            .execute()
        return result.data[0] if result.data else {**step, **updates}
    except Exception as e:
        logger.error(f"Failed to save step {step_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save step")


@router.delete("/steps/{step_id}", response_model=DeleteResponse)
async def delete_step(step_id: str, auth: AuthContext = Depends(get_auth_context)):
    """Delete a step and close the gap it leaves in step_order."""
    supabase = require_db(get_supabase())
    step = fetch_owned(supabase, "steps", step_id, auth.user_id, "Step")

    try:
        supabase.table("steps")\
            .delete()\
            .eq("id", step_id)\
            .eq("user_id", auth.user_id)\
            .execute()
        remaining = _load_steps(supabase, step["flow_id"])
        _persist_order(supabase, [
            s for s, old in zip(renumber_steps(remaining), remaining)
            if s["step_order"] != old.get("step_order")
        ])
    except Exception as e:
        logger.error(f"Failed to delete step {step_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete step")

    return DeleteResponse(success=True, id=step_id)


@router.post("/steps/{step_id}/move")
async def move_step_endpoint(
    step_id: str,
    payload: StepMoveRequest,
    auth: AuthContext = Depends(get_auth_context)
):
    """Swap a step with its neighbour and persist the renumbered order."""
    supabase = require_db(get_supabase())
    step = fetch_owned(supabase, "steps", step_id, auth.user_id, "Step")

    try:
        steps = _load_steps(supabase, step["flow_id"])
        index = next(i for i, s in enumerate(steps) if s["id"] == step_id)
        reordered, moved = move_step(steps, index, payload.direction.value)
        if moved:
            _persist_order(supabase, reordered)
    except Exception as e:
        logger.error(f"Failed to reorder steps: {e}")
        raise HTTPException(status_code=500, detail="Failed to reorder")

    return {"moved": moved, "steps": reordered}


@router.put("/flows/{flow_id}/steps/order", response_model=List[Step])
async def reorder_steps(
    flow_id: str,
    payload: StepOrderRequest,
    auth: AuthContext = Depends(get_auth_context)
):
    supabase = require_db(get_supabase())
    fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    try:
        steps = _load_steps(supabase, flow_id)
    except Exception as e:
        logger.error(f"Failed to load steps: {e}")
        raise HTTPException(status_code=500, detail="Failed to load steps")

    try:
        reordered = reorder_by_ids(steps, payload.step_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        _persist_order(supabase, reordered)
    except Exception as e:
        logger.error(f"Failed to reorder steps: {e}")
        raise HTTPException(status_code=500, detail="Failed to reorder")

    return reordered
