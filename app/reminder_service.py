"""
Reminder Service

Composes onboarding reminder emails and dispatches them through the
Supabase notification Edge Function.
"""

import os
import logging
from typing import List, Dict, Any, Optional

from dotenv import load_dotenv

from app.progress_engine import customer_flow_progress

logger = logging.getLogger(__name__)

load_dotenv()

NOTIFICATION_FUNCTION = os.environ.get("NOTIFICATION_FUNCTION", "send-email")


class ReminderDispatchError(Exception):
    """The notification function rejected or failed the send."""


def compose_reminder(
    customer: Dict[str, Any],
    flow: Dict[str, Any],
    steps: List[Dict[str, Any]],
    progress_rows: List[Dict[str, Any]],
    portal_url: str,
    step: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
    company_name: Optional[str] = None
) -> Dict[str, str]:
    """Build the subject and body of a reminder email."""
    summary = customer_flow_progress(steps, progress_rows, flow)
    flow_name = flow.get("name", "your onboarding")

    if step is None and summary["next_step_id"]:
        step = next((s for s in steps if s["id"] == summary["next_step_id"]), None)

    if step is not None:
        subject = f"Next up in {flow_name}: {step.get('title', 'your next step')}"
    else:
        subject = f"Reminder: {flow_name}"

    step_text = ""
    if step is not None:
        step_text = f"Your next step is **{step.get('title', '')}**"
        if step.get("estimated_time"):
            step_text += f" (about {step['estimated_time']})"
        step_text += ".\n"
        if step.get("description"):
            step_text += f"{step['description']}\n"
    elif summary["total"]:
        step_text = "You have completed every step. Nice work!\n"

    note_text = f"\n{message}\n" if message else ""

    body = f"""Hi {customer.get('name') or 'there'},

This is a friendly reminder about {flow_name}.

**Progress:** {summary['completed']} of {summary['total']} steps completed ({summary['percent']}%).

{step_text}{note_text}
Pick up where you left off here:
{portal_url}

Thanks,
{company_name or 'The Onboarding Team'}
"""

    return {"subject": subject, "body": body}


def dispatch_reminder(supabase, to: str, subject: str, body: str) -> Any:
    """Invoke the notification Edge Function; raises ReminderDispatchError on failure."""
    try:
        response = supabase.functions.invoke(
            NOTIFICATION_FUNCTION,
            invoke_options={"body": {"to": to, "subject": subject, "body": body}},
        )
    except Exception as e:
        logger.error(f"Notification function {NOTIFICATION_FUNCTION} failed: {e}")
        raise ReminderDispatchError(str(e)) from e

    logger.info(f"Reminder dispatched to {to} via {NOTIFICATION_FUNCTION}")
    return response
