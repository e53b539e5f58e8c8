from typing import List, Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel, EmailStr, Field, field_validator


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _required_text(v, message: str):
    if v is None or not str(v).strip():
        raise ValueError(message)
    return str(v).strip()


# =============================================================================
# ENUMS
# =============================================================================

class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"


# =============================================================================
# RECORDS
# =============================================================================

class BaseRecord(BaseModel):
    id: str
    user_id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Company(BaseRecord):
    name: str
    domain: Optional[str] = None
    logo_url: Optional[str] = None


class OnboardingFlow(BaseRecord):
    company_id: str
    name: str
    description: Optional[str] = None
    is_active: bool = True
    company_name: Optional[str] = None
    step_count: Optional[int] = None


class Step(BaseRecord):
    flow_id: str
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    step_order: int
    estimated_time: Optional[str] = None


class Customer(BaseRecord):
    company_id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    metadata: Optional[Any] = None
    company_name: Optional[str] = None


class CustomerProgress(BaseRecord):
    customer_id: str
    flow_id: str
    step_id: str
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    completed_at: Optional[str] = None
    notes: Optional[str] = None


class Reminder(BaseModel):
    id: str
    user_id: str
    customer_id: str
    flow_id: str
    step_id: Optional[str] = None
    message: str
    scheduled_at: str
    sent_at: Optional[str] = None
    status: ReminderStatus = ReminderStatus.PENDING
    created_at: Optional[str] = None


# =============================================================================
# REQUESTS
# =============================================================================

class CompanyCreate(BaseModel):
    name: str
    domain: Optional[str] = None
    logo_url: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_required(cls, v):
        return _required_text(v, "Company name is required")

    @field_validator("domain", "logo_url", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    domain: Optional[str] = None
    logo_url: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        return _required_text(v, "Company name is required")

    @field_validator("domain", "logo_url", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class CustomerCreate(BaseModel):
    company_id: str
    email: EmailStr
    name: Optional[str] = None
    phone: Optional[str] = None
    metadata: Optional[Any] = None

    @field_validator("company_id", "email", mode="before")
    @classmethod
    def email_and_company_required(cls, v):
        return _required_text(v, "Email and company are required")

    @field_validator("name", "phone", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class CustomerUpdate(BaseModel):
    company_id: Optional[str] = None
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    metadata: Optional[Any] = None

    # Only runs for fields present in the payload; an explicit null is rejected
    @field_validator("company_id", "email", mode="before")
    @classmethod
    def email_and_company_not_blank(cls, v):
        return _required_text(v, "Email and company are required")

    @field_validator("name", "phone", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class FlowCreate(BaseModel):
    company_id: str
    name: str
    description: Optional[str] = None

    @field_validator("company_id", "name", mode="before")
    @classmethod
    def name_and_company_required(cls, v):
        return _required_text(v, "Name and company are required")

    @field_validator("description", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class FlowUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        return _required_text(v, "Name and company are required")

    @field_validator("description", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)

    @field_validator("is_active", mode="before")
    @classmethod
    def is_active_not_null(cls, v):
        if v is None:
            raise ValueError("is_active must be true or false")
        return v


class StepCreate(BaseModel):
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    estimated_time: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_required(cls, v):
        return _required_text(v, "Title is required")

    @field_validator("description", "content", "estimated_time", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class StepUpdate(StepCreate):
    """Editing a step resubmits the whole form."""


class StepMoveRequest(BaseModel):
    direction: MoveDirection


class StepOrderRequest(BaseModel):
    step_ids: List[str]


class ProgressUpdate(BaseModel):
    customer_id: str
    flow_id: str
    step_id: str
    status: ProgressStatus
    notes: Optional[str] = None


class PortalToggleRequest(BaseModel):
    customer_id: str
    flow_id: str


class ChatMessage(BaseModel):
    role: str  # "user" | "assistant"
    content: str


class ConciergeRequest(BaseModel):
    customer_id: str
    flow_id: str
    selected_step_id: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)


class ReminderCreate(BaseModel):
    customer_id: str
    flow_id: str
    step_id: Optional[str] = None
    message: Optional[str] = None

    @field_validator("message", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


# =============================================================================
# RESPONSES
# =============================================================================

class DeleteResponse(BaseModel):
    success: bool
    id: str
    dependents: Dict[str, int] = Field(default_factory=dict)


class StepStatus(BaseModel):
    step_id: str
    title: str
    step_order: int
    status: ProgressStatus
    completed_at: Optional[str] = None


class FlowProgressSummary(BaseModel):
    flow_id: str
    flow_name: Optional[str] = None
    completed: int
    total: int
    percent: int
    next_step_id: Optional[str] = None
    steps: List[StepStatus] = Field(default_factory=list)


class FunnelStep(BaseModel):
    step_id: str
    title: str
    step_order: int
    completed: int
    percent: int
    drop_off: int


class FlowFunnel(BaseModel):
    flow_id: str
    flow_name: str
    customers: int
    steps: List[FunnelStep]
    biggest_drop_off: Optional[FunnelStep] = None


class ActivityItem(BaseModel):
    progress_id: str
    customer_id: str
    customer_name: str
    step_id: str
    step_title: str
    status: ProgressStatus
    updated_at: Optional[str] = None


class DashboardStats(BaseModel):
    companies: int
    customers: int
    flows: int
    active_flows: int
    completion_rate: int
    recent_activity: List[ActivityItem]


class DashboardInsights(BaseModel):
    summary: str
    ai_generated: bool
    stats: DashboardStats
    funnels: List[FlowFunnel]


class PortalView(BaseModel):
    flow: OnboardingFlow
    customer: Customer
    steps: List[Step]
    progress: List[CustomerProgress]
    selected_step_id: Optional[str] = None
    completed: int
    total: int
    percent: int


class ConciergeResponse(BaseModel):
    response: str
    ai_available: bool


class SessionState(BaseModel):
    user: Optional[Dict[str, Any]] = None
    is_authenticated: bool
    profile: Optional[Dict[str, Any]] = None
