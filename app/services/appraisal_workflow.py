"""
Appraisal Lifecycle Engine

Every operation is one unit of work on the request's session:
load the appraisal, ask the authorizer, validate the payload, write the
review (where the operation has one) and the new status, commit.

The status write is conditional on the status read at the start of the
operation (see AppraisalStore.transition), and the review write is an
upsert, so re-running an operation after a failure converges on the same
state.
"""
from typing import Any, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AccessDeniedError,
    InvalidArgumentError,
    InvalidStateError,
    PreconditionFailedError,
    ValidationFailedError,
)
from app.models.appraisal import Appraisal, AppraisalStatus
from app.models.review import Review
from app.models.user import UserRole
from app.schemas.appraisal import (
    CallerFlags,
    FinalizeRequest,
    ManagerReviewRequest,
    ReviewProgress,
    SelfReviewRequest,
    TransitionPermission,
    WorkflowCheckResponse,
)
from app.services.appraisal_store import AppraisalStore, ReviewStore
from app.services.base import BaseService
from app.services import transition_authorizer as authorizer
from app.services.transition_authorizer import Decision, Operation

P = TypeVar("P", bound=BaseModel)
Payload = Union[BaseModel, Dict[str, Any]]


def _validate(model: Type[P], payload: Payload) -> P:
    """Coerce a dict or model into `model`, reporting problems per field."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]) or "body", "msg": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationFailedError("Invalid payload", errors=errors) from e


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


class AppraisalWorkflowService(BaseService):

    def __init__(self, db: Session):
        super().__init__(db)
        self.appraisals = AppraisalStore(db)
        self.reviews = ReviewStore(db)

    # --- guards ---

    def _deny(self, decision: Decision, appraisal: Optional[Appraisal], requested: Optional[str], caller_id):
        details = {
            "current_status": appraisal.status if appraisal is not None else None,
            "requested_status": requested,
            "required_role": decision.required_role,
        }
        self.log_warning(
            f"Workflow action denied: {decision.reason}",
            appraisal_id=appraisal.id if appraisal is not None else None,
            caller_id=caller_id,
            **{k: v for k, v in details.items() if v is not None},
        )
        raise AccessDeniedError(decision.reason, details=details)

    def _require_state(self, operation: Operation, appraisal: Appraisal):
        decision = authorizer.check_operation_state(operation, appraisal.status)
        if not decision:
            raise InvalidStateError(
                decision.reason,
                current_status=appraisal.status,
                allowed_statuses=authorizer.admissible_statuses(operation),
            )

    def _advance(self, appraisal: Appraisal, target: AppraisalStatus, caller_id, **fields):
        previous = appraisal.status
        self.appraisals.transition(appraisal, expected=appraisal.current_status, new_status=target, **fields)
        self.commit()
        self.log_info(
            f"Appraisal {appraisal.id} moved {previous} -> {target.value}",
            appraisal_id=appraisal.id,
            from_status=previous,
            to_status=target.value,
            caller_id=caller_id,
        )

    # --- named operations ---

    def submit_self_review(self, appraisal_id: int, caller_id: int, payload: Payload) -> Review:
        appraisal = self.appraisals.get(appraisal_id)
        target = Operation.SELF_REVIEW
        decision = authorizer.authorize_operation(
            target, caller_id=caller_id, appraisal_employee_id=appraisal.employee_id
        )
        if not decision:
            self._deny(decision, appraisal, AppraisalStatus.SELF_REVIEW.value, caller_id)
        self._require_state(target, appraisal)
        data = _validate(SelfReviewRequest, payload)

        review = self.reviews.upsert(appraisal.id, caller_id, data.model_dump())
        self._advance(appraisal, AppraisalStatus.SELF_REVIEW, caller_id)
        self.db.refresh(review)
        return review

    def submit_manager_review(self, appraisal_id: int, caller_role, caller_id: int, payload: Payload) -> Review:
        decision = authorizer.authorize_operation(Operation.MANAGER_REVIEW, caller_role=caller_role)
        if not decision:
            self._deny(decision, None, AppraisalStatus.PM_REVIEW.value, caller_id)
        appraisal = self.appraisals.get(appraisal_id)
        self._require_state(Operation.MANAGER_REVIEW, appraisal)
        data = _validate(ManagerReviewRequest, payload)

        review = self.reviews.find_for(appraisal.id, appraisal.employee_id)
        if review is None:
            raise PreconditionFailedError("Employee self-review not found; no self-review to annotate")

        self.reviews.annotate(review, caller_id, data.manager_comments, data.manager_rating)
        self._advance(appraisal, AppraisalStatus.PM_REVIEW, caller_id)
        self.db.refresh(review)
        return review

    def finalize_appraisal(self, appraisal_id: int, caller_role, payload: Payload, caller_id: Optional[int] = None) -> Appraisal:
        decision = authorizer.authorize_operation(Operation.FINALIZE, caller_role=caller_role)
        if not decision:
            self._deny(decision, None, AppraisalStatus.COMPLETED.value, caller_id)
        appraisal = self.appraisals.get(appraisal_id)
        self._require_state(Operation.FINALIZE, appraisal)
        data = _validate(FinalizeRequest, payload)

        if data.comments:
            # No column holds finalization comments yet; keep them out of storage.
            self.log_info(
                f"Finalization comments for appraisal {appraisal.id} were not persisted",
                appraisal_id=appraisal.id,
            )
        self._advance(appraisal, AppraisalStatus.COMPLETED, caller_id, overall_rating=data.overall_rating)
        self.db.refresh(appraisal)
        return appraisal

    # --- generic status change ---

    def update_status(self, appraisal_id: int, caller_role, caller_id: int, requested_status: str) -> Appraisal:
        """
        Administrative status change through the edge table. Reviews are not
        touched, so this is for correcting an appraisal rather than driving it.
        """
        try:
            requested = AppraisalStatus(requested_status)
        except ValueError:
            raise InvalidArgumentError(
                "Invalid status",
                details={"status": requested_status, "allowed": AppraisalStatus.values()},
            )

        appraisal = self.appraisals.get(appraisal_id)
        decision = authorizer.decide(
            appraisal.status, requested, caller_role, caller_id, appraisal.employee_id
        )
        if not decision:
            self._deny(decision, appraisal, requested.value, caller_id)
        if decision.override:
            self.log_warning(
                f"Admin override on appraisal {appraisal.id}: {appraisal.status} -> {requested.value}",
                appraisal_id=appraisal.id,
                caller_id=caller_id,
            )

        self._advance(appraisal, requested, caller_id)
        self.db.refresh(appraisal)
        return appraisal

    # --- inspection ---

    def describe_workflow(self, appraisal_id: int, caller_role, caller_id: int) -> WorkflowCheckResponse:
        """Where the appraisal stands and whether this caller can move it on."""
        appraisal = self.appraisals.get(appraisal_id)
        current = appraisal.current_status
        upcoming = authorizer.next_status(current)

        if upcoming is None:
            permission = TransitionPermission(can_transition=False, reason=authorizer.DenialReason.TERMINAL)
        else:
            decision = authorizer.decide(current, upcoming, caller_role, caller_id, appraisal.employee_id)
            permission = TransitionPermission(
                can_transition=decision.allowed,
                reason="User can transition to next status" if decision.allowed else decision.reason,
                required_role=decision.required_role,
            )

        review = self.reviews.find_for(appraisal.id, appraisal.employee_id)
        role = authorizer.coerce_role(caller_role)
        return WorkflowCheckResponse(
            appraisal_id=appraisal.id,
            employee_id=appraisal.employee_id,
            status=current,
            next_status=upcoming,
            caller=CallerFlags(
                id=caller_id,
                role=_role_value(caller_role),
                is_owner=str(caller_id) == str(appraisal.employee_id),
                is_manager=role == UserRole.MANAGER,
                is_hr=role == UserRole.HR,
                is_admin=role == UserRole.ADMIN,
            ),
            permissions=permission,
            review=ReviewProgress(
                has_self_review=True,
                has_manager_review=review.has_manager_review,
            ) if review is not None else None,
        )
