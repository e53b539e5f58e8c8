"""
System Routes - Health

Public health check covering the Supabase connection and AI configuration.
"""

import os
import logging
from typing import Dict
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from app.supabase_client import get_supabase
from app import concierge_agent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])

API_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.
    Public - no auth required.
    """
    services = {}

    try:
        supabase = get_supabase()
        if supabase:
            supabase.table("companies").select("id").limit(1).execute()
            services["database"] = "healthy"
        else:
            services["database"] = "unavailable"
    except Exception as e:
        services["database"] = f"error: {str(e)[:50]}"

    services["ai"] = "healthy" if concierge_agent.is_available() else "not configured"

    status = "healthy" if services["database"] == "healthy" else "degraded"

    return HealthResponse(
        status=status,
        timestamp=datetime.utcnow().isoformat(),
        version=API_VERSION,
        environment=os.getenv("ENVIRONMENT", "development"),
        services=services
    )
