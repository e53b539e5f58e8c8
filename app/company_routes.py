"""
Company Routes

Companies are the vendor's client accounts; flows and customers hang off them.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from app.supabase_client import get_supabase
from app.auth_permissions import AuthContext, get_auth_context
from app.router_utils import require_db, fetch_owned, count_rows, utc_now_iso
from app.schemas import Company, CompanyCreate, CompanyUpdate, DeleteResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/companies", tags=["companies"])


@router.get("", response_model=List[Company])
async def list_companies(auth: AuthContext = Depends(get_auth_context)):
    """List the owner's companies, newest first."""
    supabase = require_db(get_supabase())

    try:
        result = supabase.table("companies")\
            .select("*")\
            .eq("user_id", auth.user_id)\
            .order("created_at", desc=True)\
            .execute()
        return result.data or []
    except Exception as e:
        logger.error(f"Failed to load companies: {e}")
        raise HTTPException(status_code=500, detail="Failed to load companies")


@router.get("/{company_id}", response_model=Company)
async def get_company(company_id: str, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    return fetch_owned(supabase, "companies", company_id, auth.user_id, "Company")


@router.post("", response_model=Company, status_code=201)
async def create_company(payload: CompanyCreate, auth: AuthContext = Depends(get_auth_context)):
    supabase = require_db(get_supabase())
    now = utc_now_iso()

    try:
        result = supabase.table("companies").insert({
            "user_id": auth.user_id,
            "name": payload.name,
            "domain": payload.domain,
            "logo_url": payload.logo_url,
            "created_at": now,
            "updated_at": now,
        }).execute()
        logger.info(f"Company created: {result.data[0]['id']} ({auth.request_id})")
        return result.data[0]
    except Exception as e:
        logger.error(f"Failed to create company: {e}")
        raise HTTPException(status_code=500, detail="Failed to create company")


@router.patch("/{company_id}", response_model=Company)
async def update_company(
    company_id: str,
    payload: CompanyUpdate,
    auth: AuthContext = Depends(get_auth_context)
):
    supabase = require_db(get_supabase())
    company = fetch_owned(supabase, "companies", company_id, auth.user_id, "Company")

    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return company
    updates["updated_at"] = utc_now_iso()

    try:
        result = supabase.table("companies")\
            .update(updates)\
            .eq("id", company_id)\
            .eq("user_id", auth.user_id)\
            .execute()
        return result.data[0] if result.data else {**company, **updates}
    except Exception as e:
        logger.error(f"Failed to update company {company_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update company")


@router.delete("/{company_id}", response_model=DeleteResponse)
async def delete_company(company_id: str, auth: AuthContext = Depends(get_auth_context)):
    """
    Hard delete a company.

    Flows and customers that reference it are left in place and reported
    back as dependents.
    """
    supabase = require_db(get_supabase())
    fetch_owned(supabase, "companies", company_id, auth.user_id, "Company")

    try:
        dependents = {
            "flows": count_rows(supabase, "onboarding_flows", "company_id", company_id),
            "customers": count_rows(supabase, "customers", "company_id", company_id),
        }
        supabase.table("companies")\
            .delete()\
            .eq("id", company_id)\
            .eq("user_id", auth.user_id)\
            .execute()
    except Exception as e:
        logger.error(f"Failed to delete company {company_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete company")

    if any(dependents.values()):
        logger.warning(f"Company {company_id} deleted with dependents: {dependents}")
    return DeleteResponse(success=True, id=company_id, dependents=dependents)
