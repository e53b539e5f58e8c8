from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
import logging

from app.supabase_client import get_supabase
from app import concierge_agent
from app import (
    auth_routes,
    company_routes,
    customer_routes,
    flow_routes,
    step_routes,
    progress_routes,
    dashboard_routes,
    portal_routes,
    reminder_routes,
    system_routes,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Onboardly API",
    description="Customer onboarding flows, progress tracking and AI concierge",
    version=system_routes.API_VERSION
)


def get_cors_origins():
    """Allowed origins from CORS_ORIGINS (comma separated); local dev UI otherwise."""
    origins_str = os.environ.get("CORS_ORIGINS", "")
    if not origins_str:
        return ["http://localhost:3000", "http://127.0.0.1:3000"]
    return [o.strip() for o in origins_str.split(",") if o.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    port = os.environ.get("PORT", "8000")
    logger.info(f"Onboardly API starting on port {port}")
    logger.info(f"Supabase connected: {get_supabase() is not None}")
    logger.info(f"AI concierge: {'Configured' if concierge_agent.is_available() else 'NOT CONFIGURED - set GEMINI_API_KEY'}")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Onboardly API",
        "version": system_routes.API_VERSION,
        "description": "Customer onboarding flows, progress tracking and AI concierge",
        "docs": "/docs",
        "health": "/api/system/health"
    }


# Register Routers
app.include_router(auth_routes.router)
app.include_router(company_routes.router)
app.include_router(customer_routes.router)
app.include_router(flow_routes.router)
app.include_router(step_routes.router)
app.include_router(progress_routes.router)
app.include_router(dashboard_routes.router)
app.include_router(portal_routes.router)
app.include_router(reminder_routes.router)
app.include_router(system_routes.router)
