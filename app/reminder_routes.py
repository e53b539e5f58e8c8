"""
Reminder Routes

Send a templated reminder to a customer and keep a record of each send.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context, rate_limit
from app.router_utils import require_db, fetch_owned, fetch_one, utc_now_iso
from app.schemas import Reminder, ReminderCreate, ReminderStatus
from app.progress_engine import order_steps
from app.customer_routes import portal_url
from app.reminder_service import compose_reminder, dispatch_reminder, ReminderDispatchError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reminders", tags=["reminders"])


@router.get("", response_model=List[Reminder])
async def list_reminders(
    customer_id: Optional[str] = Query(None),
    flow_id: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context)
):
    supabase = require_db(get_supabase())

    try:
        query = supabase.table("reminders").select("*").eq("user_id", auth.user_id)
        if customer_id:
            query = query.eq("customer_id", customer_id)
        if flow_id:
            query = query.eq("flow_id", flow_id)
        return query.order("created_at", desc=True).execute().data or []
    except Exception as e:
        logger.error(f"Failed to load reminders: {e}")
        raise HTTPException(status_code=500, detail="Failed to load reminders")


@router.post("", response_model=Reminder, status_code=201)
@rate_limit("reminder")
async def send_reminder(payload: ReminderCreate, auth: AuthContext = Depends(get_auth_context)):
    """
    Compose and send a reminder email.

    The reminder row is written as pending before dispatch and then marked
    sent or failed. A failed dispatch answers 502.
    """
    supabase = require_db(get_supabase())
    customer = fetch_owned(supabase, "customers", payload.customer_id, auth.user_id, "Customer")
    flow = fetch_owned(supabase, "onboarding_flows", payload.flow_id, auth.user_id, "Flow")

    if flow.get("company_id") != customer.get("company_id"):
        raise HTTPException(status_code=400, detail="Flow does not belong to the customer's company")

    try:
        steps = order_steps(supabase.table("steps").select("*").eq("flow_id", flow["id"]).execute().data or [])
        progress = supabase.table("customer_progress")\
            .select("*")\
            .eq("customer_id", customer["id"])\
            .eq("flow_id", flow["id"])\
            .execute().data or []
        company = fetch_one(supabase, "companies", flow["company_id"])
    except Exception as e:
        logger.error(f"Failed to load reminder context: {e}")
        raise HTTPException(status_code=500, detail="Failed to send reminder")

    step = None
    if payload.step_id:
        step = next((s for s in steps if s["id"] == payload.step_id), None)
        if step is None:
            raise HTTPException(status_code=404, detail="Step not found")

    email = compose_reminder(
        customer,
        flow,
        steps,
        progress,
        portal_url(customer["id"], flow["id"]),
        step=step,
        message=payload.message,
        company_name=company.get("name") if company else None,
    )

    now = utc_now_iso()
    try:
        reminder = supabase.table("reminders").insert({
            "user_id": auth.user_id,
            "customer_id": customer["id"],
            "flow_id": flow["id"],
            "step_id": payload.step_id,
            "message": email["body"],
            "scheduled_at": now,
            "status": ReminderStatus.PENDING.value,
            "created_at": now,
        }).execute().data[0]
    except Exception as e:
        logger.error(f"Failed to record reminder: {e}")
        raise HTTPException(status_code=500, detail="Failed to send reminder")

    try:
        dispatch_reminder(supabase, customer["email"], email["subject"], email["body"])
    except ReminderDispatchError:
        supabase.table("reminders")\
            .update({"status": ReminderStatus.FAILED.value})\
            .eq("id", reminder["id"])\
            .execute()
        raise HTTPException(status_code=502, detail="Failed to send reminder")

    sent = {"status": ReminderStatus.SENT.value, "sent_at": utc_now_iso()}
    result = supabase.table("reminders").update(sent).eq("id", reminder["id"]).execute()
    return result.data[0] if result.data else {**reminder, **sent}
