from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import Optional

from app.models.appraisal import AppraisalStatus

# --- Appraisal CRUD ---
class AppraisalCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    employee_id: int
    appraisal_cycle: str = Field(..., min_length=1, max_length=64)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_period(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

class AppraisalUpdate(BaseModel):
    """
    Editable fields only. Status moves through the workflow endpoints and
    the overall rating is set at finalization, so both are rejected here.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    appraisal_cycle: Optional[str] = Field(None, min_length=1, max_length=64)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

class AppraisalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    appraisal_cycle: str
    start_date: date
    end_date: date
    overall_rating: Optional[int] = None
    status: AppraisalStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Workflow payloads ---
class SelfReviewRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    strengths: str = Field(..., min_length=1)
    improvements: str = Field(..., min_length=1)
    achievements: str = Field(..., min_length=1)
    challenges: str = Field(..., min_length=1)
    self_rating: int = Field(..., ge=1, le=5)

class ManagerReviewRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    manager_comments: str = Field(..., min_length=1)
    manager_rating: int = Field(..., ge=1, le=5)

class FinalizeRequest(BaseModel):
    overall_rating: int = Field(..., ge=1, le=5)
    # Accepted for compatibility with existing clients; there is no column for it.
    comments: Optional[str] = None

class StatusUpdateRequest(BaseModel):
    # Plain string so unknown values reach the workflow and fail as INVALID_ARGUMENT
    status: str


# --- Review ---
class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appraisal_id: int
    employee_id: int
    strengths: str
    improvements: str
    achievements: str
    challenges: str
    self_rating: int
    manager_id: Optional[int] = None
    manager_comments: Optional[str] = None
    manager_rating: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Workflow inspection ---
class CallerFlags(BaseModel):
    id: int
    role: str
    is_owner: bool
    is_manager: bool
    is_hr: bool
    is_admin: bool

class TransitionPermission(BaseModel):
    can_transition: bool
    reason: str
    required_role: Optional[str] = None

class ReviewProgress(BaseModel):
    has_self_review: bool
    has_manager_review: bool

class WorkflowCheckResponse(BaseModel):
    appraisal_id: int
    employee_id: int
    status: AppraisalStatus
    next_status: Optional[AppraisalStatus] = None
    caller: CallerFlags
    permissions: TransitionPermission
    review: Optional[ReviewProgress] = None
