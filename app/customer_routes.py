"""
Customer Routes

Customers belong to a company and are onboarded through every flow of it.
"""

import os
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context
from app.router_utils import require_db, fetch_owned, count_rows, name_lookup, utc_now_iso
from app.schemas import Customer, CustomerCreate, CustomerUpdate, DeleteResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customers", tags=["customers"])

PORTAL_BASE_URL = os.environ.get("PORTAL_BASE_URL", "http://localhost:3000")


def portal_url(customer_id: str, flow_id: str) -> str:
    return f"{PORTAL_BASE_URL.rstrip('/')}/portal?c={customer_id}&f={flow_id}"


def _with_company_names(customers: List[dict], companies: List[dict]) -> List[dict]:
    names = name_lookup(companies)
    return [{**c, "company_name": names.get(c.get("company_id")) or "Unknown"} for c in customers]


@router.get("", response_model=List[Customer])
async def list_customers(
    company_id: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context)
):
    """List the owner's customers, newest first, with their company name."""
    supabase = require_db(get_supabase())

    try:
        query = supabase.table("customers").select("*").eq("user_id", auth.user_id)
        if company_id:
            query = query.eq("company_id", company_id)
        customers = query.order("created_at", desc=True).execute()
        companies = supabase.table("companies").select("id, name").eq("user_id", auth.user_id).execute()
    except Exception as e:
        logger.error(f"Failed to load customers: {e}")
        raise HTTPException(status_code=500, detail="Failed to load customers")

    return _with_company_names(customers.data or [], companies.data or [])


@router.get("/{customer_id}", response_model=Customer)
async def get_customer(customer_id: str, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    customer = fetch_owned(supabase, "customers", customer_id, auth.user_id, "Customer")
    company = supabase.table("companies").select("id, name").eq("id", customer["company_id"]).execute()
    return _with_company_names([customer], company.data or [])[0]


@router.post("", response_model=Customer, status_code=201)
async def create_customer(payload: CustomerCreate, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    company = fetch_owned(supabase, "companies", payload.company_id, auth.user_id, "Company")
    now = utc_now_iso()

    try:
        result = supabase.table("customers").insert({
            "user_id": auth.user_id,
            "company_id": payload.company_id,
            "email": str(payload.email),
            "name": payload.name,
            "phone": payload.phone,
            "metadata": payload.metadata,
            "created_at": now,
            "updated_at": now,
        }).execute()
    except Exception as e:
        logger.error(f"Failed to add customer: {e}")
        raise HTTPException(status_code=500, detail="Failed to add customer")

    return {**result.data[0], "company_name": company.get("name")}


@router.patch("/{customer_id}", response_model=Customer)
async def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    auth: AuthContext = Depends(get_auth_context)
):
    supabase = require_db(get_supabase())
    customer = fetch_owned(supabase, "customers", customer_id, auth.user_id, "Customer")

    updates = payload.model_dump(exclude_unset=True)
    if "email" in updates and updates["email"] is not None:
        updates["email"] = str(updates["email"])
    if "company_id" in updates:
        fetch_owned(supabase, "companies", updates["company_id"], auth.user_id, "Company")
    if not updates:
        return customer
    updates["updated_at"] = utc_now_iso()

    try:
        result = supabase.table("customers")\
            .update(updates)\
            .eq("id", customer_id)\
            .eq("user_id", auth.user_id)\
            .execute()
        return result.data[0] if result.data else {**customer, **updates}
    except Exception as e:
        logger.error(f"Failed to update customer {customer_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update customer")


@router.delete("/{customer_id}", response_model=DeleteResponse)
async def delete_customer(customer_id: str, auth: AuthContext = Depends(get_auth_context)):
    """Hard delete a customer; progress rows are reported, not removed."""
    supabase = require_db(get_supabase())
    fetch_owned(supabase, "customers", customer_id, auth.user_id, "Customer")

    try:
        dependents = {"progress": count_rows(supabase, "customer_progress", "customer_id", customer_id)}
        supabase.table("customers")\
            .delete()\
            .eq("id", customer_id)\
            .eq("user_id", auth.user_id)\
            .execute()
    except Exception as e:
        logger.error(f"Failed to delete customer {customer_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete customer")

    return DeleteResponse(success=True, id=customer_id, dependents=dependents)


@router.get("/{customer_id}/portal-link")
async def get_portal_link(
    customer_id: str,
    flow_id: str = Query(...),
    auth: AuthContext = Depends(get_auth_context)
):
    """Shareable portal URL for one customer and one of their company's flows."""
    supabase = require_db(get_supabase())
    customer = fetch_owned(supabase, "customers", customer_id, auth.user_id, "Customer")
    flow = fetch_owned(supabase, "onboarding_flows", flow_id, auth.user_id, "Flow")

    if flow.get("company_id") != customer.get("company_id"):
        raise HTTPException(status_code=400, detail="Flow does not belong to the customer's company")

    return {"customer_id": customer_id, "flow_id": flow_id, "url": portal_url(customer_id, flow_id)}
