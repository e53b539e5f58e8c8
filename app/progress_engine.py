"""
Progress Engine

Client-side aggregation over already-loaded onboarding records.
Pure functions only: routes load rows from Supabase and pass them in.
"""

import math
from typing import List, Dict, Any, Optional, Set, Tuple

from app.schemas import ProgressStatus, MoveDirection


# =============================================================================
# BASICS
# =============================================================================

def percent_complete(completed: int, total: int) -> int:
    """Whole-number percentage rounded half up; 0 when there is nothing to complete."""
    if not total:
        return 0
    return math.floor(completed * 100 / total + 0.5)


def toggle_status(current: Optional[str]) -> str:
    """Completed steps are reopened, anything else becomes completed."""
    if current == ProgressStatus.COMPLETED.value:
        return ProgressStatus.NOT_STARTED.value
    return ProgressStatus.COMPLETED.value


def order_steps(steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(steps, key=lambda s: (s.get("step_order") or 0, s.get("created_at") or ""))


def _status_of(row: Optional[Dict[str, Any]]) -> str:
    if not row:
        return ProgressStatus.NOT_STARTED.value
    return row.get("status") or ProgressStatus.NOT_STARTED.value


def _latest_by_step(progress_rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Keep the most recently updated row per step."""
    latest: Dict[str, Dict[str, Any]] = {}
    for row in progress_rows:
        step_id = row.get("step_id")
        current = latest.get(step_id)
        if current is None or (row.get("updated_at") or "") > (current.get("updated_at") or ""):
            latest[step_id] = row
    return latest


def _completed_slots(progress_rows: List[Dict[str, Any]]) -> Set[Tuple[str, str, str]]:
    """(customer_id, flow_id, step_id) whose latest row is completed."""
    by_customer_flow: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
    for row in progress_rows:
        key = (row.get("customer_id"), row.get("flow_id"))
        by_customer_flow.setdefault(key, []).append(row)

    slots = set()
    for (customer_id, flow_id), rows in by_customer_flow.items():
        for step_id, row in _latest_by_step(rows).items():
            if _status_of(row) == ProgressStatus.COMPLETED.value:
                slots.add((customer_id, flow_id, step_id))
    return slots


# =============================================================================
# STEP ORDERING
# =============================================================================

def renumber_steps(steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Assign step_order 1..n following list order."""
    return [{**step, "step_order": i + 1} for i, step in enumerate(steps)]


def move_step(steps: List[Dict[str, Any]], index: int, direction: str) -> Tuple[List[Dict[str, Any]], bool]:
    """
    Swap the step at index with its neighbour and renumber.

    Returns (steps, moved). Moving past either end leaves the list untouched.
    """
    new_index = index - 1 if direction == MoveDirection.UP.value else index + 1
    if index < 0 or index >= len(steps) or new_index < 0 or new_index >= len(steps):
        return list(steps), False

    reordered = list(steps)
    reordered[index], reordered[new_index] = reordered[new_index], reordered[index]
    return renumber_steps(reordered), True


def reorder_by_ids(steps: List[Dict[str, Any]], step_ids: List[str]) -> List[Dict[str, Any]]:
    """Reorder to match step_ids exactly; raises ValueError on a mismatch."""
    by_id = {step["id"]: step for step in steps}
    if len(step_ids) != len(set(step_ids)) or set(step_ids) != set(by_id):
        raise ValueError("step_ids must list every step of the flow exactly once")
    return renumber_steps([by_id[step_id] for step_id in step_ids])


# =============================================================================
# PER-CUSTOMER PROGRESS
# =============================================================================

def customer_flow_progress(
    steps: List[Dict[str, Any]],
    progress_rows: List[Dict[str, Any]],
    flow: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Summarize one customer's progress through one flow.

    Rows pointing at steps no longer in the flow are ignored.
    """
    ordered = order_steps(steps)
    latest = _latest_by_step(progress_rows)

    step_statuses = []
    completed = 0
    next_step_id = None
    for step in ordered:
        row = latest.get(step["id"])
        status = _status_of(row)
        if status == ProgressStatus.COMPLETED.value:
            completed += 1
        elif next_step_id is None:
            next_step_id = step["id"]
        step_statuses.append({
            "step_id": step["id"],
            "title": step.get("title", ""),
            "step_order": step.get("step_order") or 0,
            "status": status,
            "completed_at": row.get("completed_at") if row else None,
        })

    return {
        "flow_id": flow["id"] if flow else (ordered[0]["flow_id"] if ordered else ""),
        "flow_name": flow.get("name") if flow else None,
        "completed": completed,
        "total": len(ordered),
        "percent": percent_complete(completed, len(ordered)),
        "next_step_id": next_step_id,
        "steps": step_statuses,
    }


# =============================================================================
# FUNNELS
# =============================================================================

def flow_funnel(
    flow: Dict[str, Any],
    steps: List[Dict[str, Any]],
    customers: List[Dict[str, Any]],
    progress_rows: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Per-step completion counts for the customers assigned to a flow.

    Customers are assigned through the flow's company. drop_off is the
    number of customers lost relative to the previous step.
    """
    assigned = {c["id"] for c in customers if c.get("company_id") == flow.get("company_id")}
    completed_by_step: Dict[str, set] = {}
    for customer_id, flow_id, step_id in _completed_slots(progress_rows):
        if flow_id == flow["id"] and customer_id in assigned:
            completed_by_step.setdefault(step_id, set()).add(customer_id)

    funnel_steps = []
    previous = len(assigned)
    for step in order_steps(steps):
        count = len(completed_by_step.get(step["id"], ()))
        funnel_steps.append({
            "step_id": step["id"],
            "title": step.get("title", ""),
            "step_order": step.get("step_order") or 0,
            "completed": count,
            "percent": percent_complete(count, len(assigned)),
            "drop_off": max(previous - count, 0),
        })
        previous = count

    return {
        "flow_id": flow["id"],
        "flow_name": flow.get("name", ""),
        "customers": len(assigned),
        "steps": funnel_steps,
        "biggest_drop_off": biggest_drop_off(funnel_steps),
    }


def biggest_drop_off(funnel_steps: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The first step with the largest positive drop-off, if any."""
    worst = None
    for step in funnel_steps:
        if step["drop_off"] > 0 and (worst is None or step["drop_off"] > worst["drop_off"]):
            worst = step
    return worst


# =============================================================================
# DASHBOARD AGGREGATES
# =============================================================================

def completion_rate(
    customers: List[Dict[str, Any]],
    flows: List[Dict[str, Any]],
    steps: List[Dict[str, Any]],
    progress_rows: List[Dict[str, Any]]
) -> int:
    """
    Completed step slots over expected step slots across every
    customer x active flow of the customer's company.
    """
    steps_by_flow: Dict[str, set] = {}
    for step in steps:
        steps_by_flow.setdefault(step.get("flow_id"), set()).add(step["id"])

    completed_slots = _completed_slots(progress_rows)

    expected = 0
    completed = 0
    for customer in customers:
        for flow in flows:
            if not flow.get("is_active", True) or flow.get("company_id") != customer.get("company_id"):
                continue
            flow_steps = steps_by_flow.get(flow["id"], set())
            expected += len(flow_steps)
            completed += sum(
                1 for step_id in flow_steps
                if (customer["id"], flow["id"], step_id) in completed_slots
            )

    return percent_complete(completed, expected)


def recent_activity(
    progress_rows: List[Dict[str, Any]],
    customers: List[Dict[str, Any]],
    steps: List[Dict[str, Any]],
    limit: int = 10
) -> List[Dict[str, Any]]:
    """Most recently updated progress rows, newest first."""
    customer_names = {c["id"]: c.get("name") or c.get("email") or "Unknown" for c in customers}
    step_titles = {s["id"]: s.get("title") or "Untitled step" for s in steps}

    ordered = sorted(
        progress_rows,
        key=lambda r: r.get("updated_at") or r.get("created_at") or "",
        reverse=True
    )
    return [
        {
            "progress_id": row["id"],
            "customer_id": row.get("customer_id"),
            "customer_name": customer_names.get(row.get("customer_id"), "Unknown"),
            "step_id": row.get("step_id"),
            "step_title": step_titles.get(row.get("step_id"), "Deleted step"),
            "status": _status_of(row),
            "updated_at": row.get("updated_at") or row.get("created_at"),
        }
        for row in ordered[:max(limit, 0)]
    ]
