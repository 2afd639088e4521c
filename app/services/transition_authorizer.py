"""
Transition Authorizer

Pure decision functions for the appraisal lifecycle:

    pending -> self-review -> pm-review -> hr-review -> completed

`decide` answers "may this caller move the appraisal from A to B?" for the
generic status endpoint. `authorize_operation` and `check_operation_state`
answer the same question for the named workflow operations, which have their
own re-submission windows.

Nothing in this module touches the database.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from app.core.config import settings
from app.models.appraisal import AppraisalStatus, STATUS_CHAIN
from app.models.user import UserRole

RoleLike = Union[UserRole, str, None]


class DenialReason:
    """Stable, human-readable denial messages returned to API clients."""
    OWNER_ONLY_SELF_REVIEW = "Only the owning employee may submit self-review"
    MANAGER_ONLY_PM_REVIEW = "Only a manager may advance to PM review"
    HR_ONLY_HR_REVIEW = "Only HR may advance to HR review"
    HR_ONLY_COMPLETE = "Only HR may complete the appraisal"
    MANAGER_ONLY_MANAGER_REVIEW = "Only managers can submit manager reviews"
    HR_ONLY_FINALIZE = "Only HR can finalize appraisals"
    UNKNOWN_ROLE = "Caller role is not recognized"
    TERMINAL = "Appraisal is completed and admits no further transitions"
    BACK_TO_PENDING = "An appraisal cannot be returned to pending"
    SAME_STATUS = "Appraisal is already in '{status}'"
    BACKWARDS = "Cannot move an appraisal back from '{current}' to '{requested}'"
    SKIP = "Cannot skip from '{current}' to '{requested}'; the next step is '{expected}'"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    required_role: Optional[str] = None
    override: bool = False

    def __bool__(self):
        return self.allowed

    @classmethod
    def allow(cls, reason: str = "Transition permitted", override: bool = False) -> "Decision":
        return cls(True, reason, override=override)

    @classmethod
    def deny(cls, reason: str, required_role: Optional[str] = None) -> "Decision":
        return cls(False, reason, required_role=required_role)


# (current, requested) -> who may take the edge. "owner" means the appraisal's employee.
OWNER = "owner"
EDGES: Dict[tuple, tuple] = {
    (AppraisalStatus.PENDING, AppraisalStatus.SELF_REVIEW): (OWNER, DenialReason.OWNER_ONLY_SELF_REVIEW),
    (AppraisalStatus.SELF_REVIEW, AppraisalStatus.PM_REVIEW): (UserRole.MANAGER, DenialReason.MANAGER_ONLY_PM_REVIEW),
    (AppraisalStatus.PM_REVIEW, AppraisalStatus.HR_REVIEW): (UserRole.HR, DenialReason.HR_ONLY_HR_REVIEW),
    (AppraisalStatus.HR_REVIEW, AppraisalStatus.COMPLETED): (UserRole.HR, DenialReason.HR_ONLY_COMPLETE),
}


def coerce_role(role: RoleLike) -> Optional[UserRole]:
    """Map a caller role to UserRole; anything unrecognized becomes None."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def next_status(current: AppraisalStatus) -> Optional[AppraisalStatus]:
    index = STATUS_CHAIN.index(AppraisalStatus(current))
    if index + 1 < len(STATUS_CHAIN):
        return STATUS_CHAIN[index + 1]
    return None


def admin_override_applies(role: Optional[UserRole]) -> bool:
    return settings.admin_override_enabled and role == UserRole.ADMIN


def _same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def _explain_missing_edge(current: AppraisalStatus, requested: AppraisalStatus) -> str:
    if current == AppraisalStatus.COMPLETED:
        return DenialReason.TERMINAL
    if requested == current:
        return DenialReason.SAME_STATUS.format(status=current.value)
    if requested == AppraisalStatus.PENDING:
        return DenialReason.BACK_TO_PENDING
    if STATUS_CHAIN.index(requested) < STATUS_CHAIN.index(current):
        return DenialReason.BACKWARDS.format(current=current.value, requested=requested.value)
    return DenialReason.SKIP.format(
        current=current.value, requested=requested.value, expected=next_status(current).value
    )


def decide(
    current_status: AppraisalStatus,
    requested_status: AppraisalStatus,
    caller_role: RoleLike,
    caller_id,
    appraisal_employee_id,
) -> Decision:
    """
    Decide whether the caller may move an appraisal from `current_status`
    to `requested_status`.

    Admins bypass the edge table entirely while the admin override is
    enabled, including moves out of `completed`.
    """
    current = AppraisalStatus(current_status)
    requested = AppraisalStatus(requested_status)
    role = coerce_role(caller_role)

    if admin_override_applies(role):
        return Decision.allow("Admin override", override=True)

    edge = EDGES.get((current, requested))
    if edge is None:
        return Decision.deny(_explain_missing_edge(current, requested))

    allowed_caller, reason = edge
    # Ownership alone opens self-review, whatever the caller's role
    if allowed_caller == OWNER:
        if _same_id(caller_id, appraisal_employee_id):
            return Decision.allow()
        return Decision.deny(reason, required_role=OWNER)

    if role is None:
        return Decision.deny(DenialReason.UNKNOWN_ROLE, required_role=allowed_caller.value)

    if role == allowed_caller:
        return Decision.allow()
    return Decision.deny(reason, required_role=allowed_caller.value)


# --- Named operations ---

class Operation(str, Enum):
    SELF_REVIEW = "self-review"
    MANAGER_REVIEW = "manager-review"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class OperationRule:
    target: AppraisalStatus
    admissible: FrozenSet[AppraisalStatus]
    roles: FrozenSet[UserRole]
    owner_only: bool
    denial: str
    state_message: str


OPERATION_RULES: Dict[Operation, OperationRule] = {
    Operation.SELF_REVIEW: OperationRule(
        target=AppraisalStatus.SELF_REVIEW,
        admissible=frozenset({AppraisalStatus.PENDING, AppraisalStatus.SELF_REVIEW}),
        roles=frozenset(),
        owner_only=True,
        denial="You can only submit self-review for your own appraisal",
        state_message="Appraisal must be in pending or self-review status to submit self-review",
    ),
    Operation.MANAGER_REVIEW: OperationRule(
        target=AppraisalStatus.PM_REVIEW,
        admissible=frozenset({AppraisalStatus.SELF_REVIEW, AppraisalStatus.PM_REVIEW}),
        roles=frozenset({UserRole.MANAGER, UserRole.ADMIN}),
        owner_only=False,
        denial=DenialReason.MANAGER_ONLY_MANAGER_REVIEW,
        state_message="Appraisal must be in self-review or pm-review status for manager review",
    ),
    Operation.FINALIZE: OperationRule(
        target=AppraisalStatus.COMPLETED,
        admissible=frozenset({AppraisalStatus.PM_REVIEW, AppraisalStatus.HR_REVIEW}),
        roles=frozenset({UserRole.HR, UserRole.ADMIN}),
        owner_only=False,
        denial=DenialReason.HR_ONLY_FINALIZE,
        state_message="Appraisal must be in pm-review or hr-review status to finalize",
    ),
}


def authorize_operation(
    operation: Operation,
    caller_role: RoleLike = None,
    caller_id=None,
    appraisal_employee_id=None,
) -> Decision:
    """Role/ownership gate of a named operation, independent of status."""
    rule = OPERATION_RULES[operation]
    if rule.owner_only:
        if _same_id(caller_id, appraisal_employee_id):
            return Decision.allow()
        return Decision.deny(rule.denial, required_role=OWNER)

    required = ", ".join(sorted(r.value for r in rule.roles))
    role = coerce_role(caller_role)
    if role is None:
        return Decision.deny(DenialReason.UNKNOWN_ROLE, required_role=required)
    if role in rule.roles:
        return Decision.allow()
    return Decision.deny(rule.denial, required_role=required)


def check_operation_state(operation: Operation, current_status: AppraisalStatus) -> Decision:
    rule = OPERATION_RULES[operation]
    if AppraisalStatus(current_status) in rule.admissible:
        return Decision.allow()
    return Decision.deny(rule.state_message)


def admissible_statuses(operation: Operation) -> list:
    """Admissible statuses of an operation, in lifecycle order."""
    rule = OPERATION_RULES[operation]
    return [s.value for s in STATUS_CHAIN if s in rule.admissible]
