#!/usr/bin/env python3
"""
Seed Demo Onboarding Data

Creates a demo company with one onboarding flow, its steps, a few customers
and some progress so the dashboard and portal have something to show.

Usage:
    python scripts/seed_demo_data.py --user-id <owner uuid>
"""

import argparse
import logging
import os
import random
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.supabase_client import get_supabase
from app.router_utils import utc_now_iso
from app.customer_routes import portal_url

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger("seed_demo_data")

DEMO_STEPS = [
    {
        "title": "Create your workspace",
        "description": "Pick a workspace name and invite your first teammate.",
        "content": "Open Settings > Workspace, choose a name, then use Invite to add a teammate by email.",
        "estimated_time": "5 min",
    },
    {
        "title": "Connect your data source",
        "description": "Link the system you want to import from.",
        "content": "Go to Integrations, pick your provider and follow the authorization prompt.",
        "estimated_time": "10 min",
    },
    {
        "title": "Import your first records",
        "description": "Run an initial import and review the results.",
        "content": "Start an import from the Integrations page. Check the summary for skipped rows.",
        "estimated_time": "15 min",
    },
    {
        "title": "Configure notifications",
        "description": "Choose who hears about what.",
        "content": "Under Notifications, enable the daily digest and set alert recipients.",
        "estimated_time": "5 min",
    },
    {
        "title": "Schedule your kickoff call",
        "description": "Book 30 minutes with your success manager.",
        "content": "Use the booking link in your welcome email to pick a time.",
        "estimated_time": "2 min",
    },
]

DEMO_CUSTOMERS = [
    ("ana@northwind.example", "Ana Lopez"),
    ("ben@northwind.example", "Ben Carter"),
    ("chloe@northwind.example", "Chloe Nguyen"),
    ("dev@northwind.example", None),
]


def seed(user_id: str, seed_value: int = 7):
    supabase = get_supabase()
    if not supabase:
        logger.error("Supabase is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.")
        return 1

    rng = random.Random(seed_value)
    now = utc_now_iso()
    owned = {"user_id": user_id, "created_at": now, "updated_at": now}

    company = supabase.table("companies").insert({
        **owned,
        "name": "Northwind Logistics",
        "domain": "northwind.example",
    }).execute().data[0]
    logger.info(f"Company: {company['id']}")

    flow = supabase.table("onboarding_flows").insert({
        **owned,
        "company_id": company["id"],
        "name": "Getting started",
        "description": "Everything you need to go live in your first week.",
        "is_active": True,
    }).execute().data[0]
    logger.info(f"Flow: {flow['id']}")

    steps = []
    for order, step in enumerate(DEMO_STEPS, 1):
        steps.append(supabase.table("steps").insert({
            **owned,
            **step,
            "flow_id": flow["id"],
            "step_order": order,
        }).execute().data[0])
    logger.info(f"Steps: {len(steps)}")

    for email, name in DEMO_CUSTOMERS:
        customer = supabase.table("customers").insert({
            **owned,
            "company_id": company["id"],
            "email": email,
            "name": name,
        }).execute().data[0]

        # Customers finish a prefix of the flow so the funnel shows drop-off
        for step in steps[:rng.randint(0, len(steps))]:
            supabase.table("customer_progress").insert({
                **owned,
                "customer_id": customer["id"],
                "flow_id": flow["id"],
                "step_id": step["id"],
                "status": "completed",
                "completed_at": now,
            }).execute()

        logger.info(f"Customer {email}: {portal_url(customer['id'], flow['id'])}")

    return 0


def main():
    parser = argparse.ArgumentParser(description="Seed demo onboarding data")
    parser.add_argument("--user-id", required=True, help="Owner (auth user) id for the seeded records")
    parser.add_argument("--seed", type=int, default=7, help="Random seed for demo progress")
    args = parser.parse_args()
    sys.exit(seed(args.user_id, args.seed))


if __name__ == "__main__":
    main()
