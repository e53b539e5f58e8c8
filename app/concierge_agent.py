import os
import time
import logging
from typing import List, Dict, Optional, Tuple, Any
from google import genai
from google.genai import types
from dotenv import load_dotenv

from app.auth_permissions import log_ai_call

logger = logging.getLogger(__name__)

load_dotenv()

# Get API key - supports multiple env var names
API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY") or os.environ.get("GOOGLE_CLOUD_API_KEY")

# Model configuration
MODEL_NAME = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
TEMPERATURE = float(os.environ.get("GEMINI_TEMPERATURE", "0.2"))

client = None
client_error = None

try:
    if not API_KEY:
        client_error = "Missing API key. Set GEMINI_API_KEY, GOOGLE_API_KEY, or GOOGLE_CLOUD_API_KEY in your environment."
        logger.warning(client_error)
    else:
        logger.info(f"Initializing Gemini client with model: {MODEL_NAME}")
        client = genai.Client(api_key=API_KEY)
except Exception as e:
    client_error = f"Failed to initialize Gemini client: {str(e)}"
    logger.error(client_error, exc_info=True)


CONCIERGE_PROMPT = """You are the onboarding concierge for {company_name}. You help {customer_name} work through the onboarding guide "{flow_name}".

Guidelines:
- Answer questions about the steps below. Be concise, friendly and concrete.
- When the customer asks what to do next, point to the first step that is not completed.
- Do not invent steps, links or features that are not described here.
- If a question is unrelated to onboarding, gently steer back to the guide.
- If the customer seems stuck, suggest contacting support.

ONBOARDING GUIDE:
{flow_description}

PROGRESS: {completed} of {total} steps completed ({percent}%).

STEPS:
{step_lines}
{selected_block}"""

INSIGHTS_PROMPT = """You are a customer success analyst. Write a short narrative summary (3 to 6 sentences) of the onboarding health below for the vendor's dashboard.
Call out the overall completion rate, the flows that are doing well, and the step where customers drop off the most in each flow.
End with one concrete recommendation to reduce drop-off. Plain text only, no markdown headings."""

STATUS_MARKS = {
    "completed": "[x]",
    "in_progress": "[~]",
    "blocked": "[!]",
    "not_started": "[ ]",
}


def build_concierge_prompt(
    flow: Dict[str, Any],
    steps: List[Dict[str, Any]],
    summary: Dict[str, Any],
    customer: Optional[Dict[str, Any]] = None,
    company_name: Optional[str] = None,
    selected_step: Optional[Dict[str, Any]] = None
) -> str:
    """Render flow, step and progress context into the concierge system prompt."""
    status_by_step = {s["step_id"]: s["status"] for s in summary.get("steps", [])}

    step_lines = []
    for step in steps:
        mark = STATUS_MARKS.get(status_by_step.get(step["id"], "not_started"), "[ ]")
        line = f"{step.get('step_order')}. {mark} {step.get('title', '')}"
        if step.get("estimated_time"):
            line += f" (about {step['estimated_time']})"
        if step.get("description"):
            line += f" - {step['description']}"
        step_lines.append(line)

    selected_block = ""
    if selected_step:
        selected_block = (
            f"\nTHE CUSTOMER IS LOOKING AT: {selected_step.get('title', '')}\n"
            f"{selected_step.get('content') or selected_step.get('description') or 'No additional instructions.'}\n"
        )

    customer_name = "the customer"
    if customer:
        customer_name = customer.get("name") or customer.get("email") or customer_name

    return CONCIERGE_PROMPT.format(
        company_name=company_name or "our team",
        customer_name=customer_name,
        flow_name=flow.get("name", "Onboarding"),
        flow_description=flow.get("description") or "No description provided.",
        completed=summary.get("completed", 0),
        total=summary.get("total", 0),
        percent=summary.get("percent", 0),
        step_lines="\n".join(step_lines) or "(no steps yet)",
        selected_block=selected_block,
    )


def _build_contents(messages: List[Dict[str, str]]) -> List[types.Content]:
    """Convert chat history into content payload for the API."""
    contents: List[types.Content] = []
    for message in messages:
        role = message.get("role", "user")
        if role == "system":
            continue
        api_role = "user" if role == "user" else "model"
        content_text = message.get("content", "")
        if content_text:
            contents.append(
                types.Content(
                    role=api_role,
                    parts=[types.Part.from_text(text=content_text)]
                )
            )
    return contents


def _extract_text(response) -> Optional[str]:
    if response.text:
        return response.text

    if response.candidates and response.candidates[0].content.parts:
        text_parts = [
            part.text for part in response.candidates[0].content.parts
            if getattr(part, "text", None)
        ]
        if text_parts:
            return "".join(text_parts)
    return None


def _generate(contents: List[types.Content], system_instruction: str, subject: str, purpose: str) -> str:
    start = time.time()
    try:
        response = client.models.generate_content(
            model=MODEL_NAME,
            contents=contents,
            config=types.GenerateContentConfig(
                temperature=TEMPERATURE,
                max_output_tokens=2048,
                system_instruction=system_instruction,
            ),
        )
    except Exception as e:
        log_ai_call(subject, MODEL_NAME, purpose, (time.time() - start) * 1000, False, str(e))
        raise

    log_ai_call(subject, MODEL_NAME, purpose, (time.time() - start) * 1000, True)
    return _extract_text(response)


def _friendly_error(error_msg: str) -> str:
    if "429" in error_msg or "RESOURCE_EXHAUSTED" in error_msg:
        return "I'm getting a lot of questions right now. Please wait a moment and try again."
    if "401" in error_msg or "UNAUTHENTICATED" in error_msg:
        return "I'm currently unable to connect to the assistant service. Please contact support."
    return "Sorry, I ran into a problem answering that. Please try again or contact support if it keeps happening."


def is_available() -> bool:
    return client is not None


def get_chat_response(messages: List[Dict[str, str]], system_prompt: str, subject: str = "portal") -> str:
    """
    Sends the conversation history to Gemini and returns the response text.

    Args:
        messages: list of {"role": "user"|"assistant", "content": "text"}
        system_prompt: concierge context built by build_concierge_prompt
        subject: who the call is made for, used in telemetry logs

    Returns:
        Response text from Gemini or a customer-safe error message
    """
    if client is None:
        logger.error(f"Cannot get chat response: {client_error or 'Gemini client not initialized'}")
        return "The onboarding assistant is not available right now. Please use the steps on this page or contact support."

    contents = _build_contents(messages)
    if not contents:
        return "I didn't receive a message. What can I help you with?"

    try:
        text = _generate(contents, system_prompt, subject, "concierge")
    except Exception as e:
        logger.error(f"Error in get_chat_response: {e}", exc_info=True)
        return _friendly_error(str(e))

    if text:
        return text

    logger.warning("Gemini returned no content")
    return "I didn't come up with an answer. Could you rephrase your question?"


def _format_insights_context(stats: Dict[str, Any], funnels: List[Dict[str, Any]]) -> str:
    lines = [
        f"Companies: {stats['companies']}",
        f"Customers: {stats['customers']}",
        f"Flows: {stats['flows']} ({stats['active_flows']} active)",
        f"Overall completion rate: {stats['completion_rate']}%",
        "",
    ]
    for funnel in funnels:
        lines.append(f"Flow \"{funnel['flow_name']}\" ({funnel['customers']} customers):")
        for step in funnel["steps"]:
            lines.append(
                f"  {step['step_order']}. {step['title']}: {step['completed']} completed "
                f"({step['percent']}%), drop-off {step['drop_off']}"
            )
    return "\n".join(lines)


def fallback_summary(stats: Dict[str, Any], funnels: List[Dict[str, Any]]) -> str:
    """Deterministic summary used when the AI service is unavailable."""
    parts = [
        f"You are onboarding {stats['customers']} customers across {stats['companies']} companies "
        f"with {stats['active_flows']} active flows.",
        f"Overall completion rate is {stats['completion_rate']}%.",
    ]
    for funnel in funnels:
        worst = funnel.get("biggest_drop_off")
        if worst:
            parts.append(
                f"In \"{funnel['flow_name']}\" the largest drop-off is at step {worst['step_order']} "
                f"\"{worst['title']}\" ({worst['drop_off']} customers)."
            )
    return " ".join(parts)


def generate_insights(stats: Dict[str, Any], funnels: List[Dict[str, Any]], subject: str) -> Tuple[str, bool]:
    """
    Ask Gemini for a narrative dashboard summary with drop-off analysis.

    Returns (summary, ai_generated).
    """
    if client is None:
        return fallback_summary(stats, funnels), False

    contents = _build_contents([{"role": "user", "content": _format_insights_context(stats, funnels)}])
    try:
        text = _generate(contents, INSIGHTS_PROMPT, subject, "dashboard_insights")
    except Exception as e:
        logger.error(f"Error generating dashboard insights: {e}", exc_info=True)
        return fallback_summary(stats, funnels), False

    if not text:
        return fallback_summary(stats, funnels), False
    return text.strip(), True
