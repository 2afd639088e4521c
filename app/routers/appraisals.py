"""
Appraisal Router
Appraisal records plus the review workflow:
Self-review > Manager review > HR review > Completed.
"""
from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from app.core.exceptions import AccessDeniedError, NotFoundError, ValidationFailedError
from app.core.schemas import ApiResponse
from app.database import get_db
from app.models.appraisal import AppraisalStatus
from app.models.user import User, UserRole
from app.routers.auth_deps import (
    can_view_employee_records,
    check_appraisal_access,
    get_current_user,
    require_admin,
    require_manager,
)
from app.schemas.appraisal import (
    AppraisalCreate,
    AppraisalResponse,
    AppraisalUpdate,
    FinalizeRequest,
    ManagerReviewRequest,
    ReviewResponse,
    SelfReviewRequest,
    StatusUpdateRequest,
    WorkflowCheckResponse,
)
from app.services.appraisal_store import AppraisalStore, ReviewStore
from app.services.appraisal_workflow import AppraisalWorkflowService

router = APIRouter(
    prefix="/appraisals",
    tags=["appraisals"]
)

# --- Appraisal records ---

@router.get("", response_model=List[AppraisalResponse])
def list_appraisals(
    employee_id: Optional[int] = None,
    status_filter: Optional[AppraisalStatus] = Query(None, alias="status"),
    appraisal_cycle: Optional[str] = None,
    department: Optional[str] = Query(None, description="Department label of the appraised employee"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List appraisals the caller is allowed to see."""
    return AppraisalStore(db).list_visible(
        current_user,
        employee_id=employee_id,
        status=status_filter.value if status_filter else None,
        appraisal_cycle=appraisal_cycle,
        department=department,
    )

@router.post("", response_model=AppraisalResponse, status_code=status.HTTP_201_CREATED)
def create_appraisal(
    request: AppraisalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager()),
):
    """Open an appraisal for an employee. Every appraisal starts in 'pending'."""
    return AppraisalStore(db).create(
        employee_id=request.employee_id,
        appraisal_cycle=request.appraisal_cycle,
        start_date=request.start_date,
        end_date=request.end_date,
    )

@router.get("/{appraisal_id}", response_model=AppraisalResponse)
def get_appraisal(
    appraisal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    appraisal = AppraisalStore(db).get(appraisal_id)
    check_appraisal_access(current_user, appraisal)
    return appraisal

@router.put("/{appraisal_id}", response_model=AppraisalResponse)
def update_appraisal(
    appraisal_id: int,
    request: AppraisalUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Edit cycle label and dates.
    - ADMIN / HR: any time
    - MANAGER: appraisals they can see, only while in self-review
    - EMPLOYEE: only their own appraisal, only while pending
    """
    store = AppraisalStore(db)
    appraisal = store.get(appraisal_id)
    check_appraisal_access(current_user, appraisal)

    if current_user.role == UserRole.MANAGER:
        if appraisal.status != AppraisalStatus.SELF_REVIEW.value:
            raise AccessDeniedError("Managers can only update appraisals in self-review status")
    elif not current_user.sees_all_appraisals:
        if appraisal.employee_id != current_user.id or appraisal.status != AppraisalStatus.PENDING.value:
            raise AccessDeniedError("Not authorized to update this appraisal")

    changes = request.model_dump(exclude_unset=True)
    start = changes.get("start_date", appraisal.start_date)
    end = changes.get("end_date", appraisal.end_date)
    if end < start:
        raise ValidationFailedError(
            "end_date must not be before start_date",
            errors=[{"field": "end_date", "msg": "end_date must not be before start_date"}],
        )
    return store.update_fields(appraisal, changes)

@router.delete("/{appraisal_id}")
def delete_appraisal(
    appraisal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin()),
):
    """Delete an appraisal together with its reviews."""
    store = AppraisalStore(db)
    store.delete(store.get(appraisal_id))
    return {"success": True, "data": {}}

# --- Workflow ---
# Review bodies arrive as plain JSON objects and are validated by the workflow
# service, after the existence, permission and state checks.

def _body_schema(model) -> Dict[str, Any]:
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema()}},
        }
    }


@router.put("/{appraisal_id}/status")
def update_appraisal_status(
    appraisal_id: int,
    request: StatusUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Move the appraisal to an explicit status, subject to the transition rules."""
    appraisal = AppraisalWorkflowService(db).update_status(
        appraisal_id, current_user.role, current_user.id, request.status
    )
    return ApiResponse.ok(
        AppraisalResponse.model_validate(appraisal),
        message=f"Appraisal status updated to {appraisal.status}",
    ).to_dict()

@router.post("/{appraisal_id}/self-review", openapi_extra=_body_schema(SelfReviewRequest))
def submit_self_review(
    appraisal_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    review = AppraisalWorkflowService(db).submit_self_review(appraisal_id, current_user.id, payload)
    return ApiResponse.ok(
        ReviewResponse.model_validate(review),
        message="Self-review submitted successfully",
    ).to_dict()

@router.post("/{appraisal_id}/manager-review", openapi_extra=_body_schema(ManagerReviewRequest))
def submit_manager_review(
    appraisal_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    review = AppraisalWorkflowService(db).submit_manager_review(
        appraisal_id, current_user.role, current_user.id, payload
    )
    return ApiResponse.ok(
        ReviewResponse.model_validate(review),
        message="Manager review submitted successfully",
    ).to_dict()

@router.post("/{appraisal_id}/finalize", openapi_extra=_body_schema(FinalizeRequest))
def finalize_appraisal(
    appraisal_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    appraisal = AppraisalWorkflowService(db).finalize_appraisal(
        appraisal_id, current_user.role, payload, caller_id=current_user.id
    )
    return ApiResponse.ok(
        AppraisalResponse.model_validate(appraisal),
        message="Appraisal finalized successfully",
    ).to_dict()

@router.get("/{appraisal_id}/review", response_model=ReviewResponse)
def get_appraisal_review(
    appraisal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """The appraised employee's review, if one has been submitted."""
    appraisal = AppraisalStore(db).get(appraisal_id)
    if not can_view_employee_records(current_user, appraisal.employee):
        raise AccessDeniedError("Not authorized to view this review")
    review = ReviewStore(db).find_for(appraisal.id, appraisal.employee_id)
    if review is None:
        raise NotFoundError("Review not found")
    return review

@router.get("/{appraisal_id}/workflow", response_model=WorkflowCheckResponse)
def check_workflow(
    appraisal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Current and next status, and whether the caller may advance it."""
    service = AppraisalWorkflowService(db)
    check_appraisal_access(current_user, service.appraisals.get(appraisal_id))
    return service.describe_workflow(appraisal_id, current_user.role, current_user.id)
