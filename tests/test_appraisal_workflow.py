import pytest
from app.core.exceptions import (
    AccessDeniedError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    TransitionConflictError,
    ValidationFailedError,
)
from app.models.appraisal import Appraisal, AppraisalStatus
from app.models.review import Review
from app.models.user import UserRole
from app.services.appraisal_store import AppraisalStore
from app.services.appraisal_workflow import AppraisalWorkflowService
from app.services.transition_authorizer import DenialReason


def _service(db_session):
    return AppraisalWorkflowService(db_session)


def _status_of(db_session, appraisal_id):
    return db_session.get(Appraisal, appraisal_id).status


def _review_count(db_session, appraisal_id):
    return db_session.query(Review).filter(Review.appraisal_id == appraisal_id).count()


# --- submit_self_review ---

def test_owner_self_review_moves_pending_to_self_review(db_session, employee_user, make_appraisal, self_review_payload):
    """Scenario A."""
    appraisal = make_appraisal(employee_user)

    review = _service(db_session).submit_self_review(appraisal.id, employee_user.id, self_review_payload)

    assert review.id is not None
    assert review.employee_id == employee_user.id
    assert review.strengths == "Clear communicator"
    assert review.self_rating == 4
    assert _status_of(db_session, appraisal.id) == AppraisalStatus.SELF_REVIEW.value


def test_self_review_by_another_employee_is_forbidden(db_session, employee_user, other_employee, make_appraisal, self_review_payload):
    """Scenario B."""
    appraisal = make_appraisal(employee_user)

    with pytest.raises(AccessDeniedError) as exc:
        _service(db_session).submit_self_review(appraisal.id, other_employee.id, self_review_payload)

    assert exc.value.details["current_status"] == "pending"
    assert _review_count(db_session, appraisal.id) == 0
    assert _status_of(db_session, appraisal.id) == "pending"


def test_self_review_resubmission_updates_the_same_review(db_session, employee_user, make_appraisal, self_review_payload):
    appraisal = make_appraisal(employee_user)
    service = _service(db_session)

    first = service.submit_self_review(appraisal.id, employee_user.id, self_review_payload)
    revised = dict(self_review_payload, strengths="Mentoring new hires", self_rating=5)
    second = service.submit_self_review(appraisal.id, employee_user.id, revised)

    assert second.id == first.id
    assert second.strengths == "Mentoring new hires"
    assert second.self_rating == 5
    assert _review_count(db_session, appraisal.id) == 1
    assert _status_of(db_session, appraisal.id) == "self-review"


@pytest.mark.parametrize("status", [AppraisalStatus.PM_REVIEW, AppraisalStatus.HR_REVIEW, AppraisalStatus.COMPLETED])
def test_self_review_outside_its_window_is_invalid_state(db_session, employee_user, make_appraisal, self_review_payload, status):
    appraisal = make_appraisal(employee_user, status=status)

    with pytest.raises(InvalidStateError) as exc:
        _service(db_session).submit_self_review(appraisal.id, employee_user.id, self_review_payload)

    assert exc.value.details["allowed_statuses"] == ["pending", "self-review"]


def test_self_review_for_missing_appraisal(db_session, employee_user, self_review_payload):
    with pytest.raises(NotFoundError):
        _service(db_session).submit_self_review(9999, employee_user.id, self_review_payload)


@pytest.mark.parametrize("rating,ok", [(0, False), (1, True), (5, True), (6, False)])
def test_self_rating_boundaries(db_session, employee_user, make_appraisal, self_review_payload, rating, ok):
    appraisal = make_appraisal(employee_user)
    payload = dict(self_review_payload, self_rating=rating)

    if ok:
        review = _service(db_session).submit_self_review(appraisal.id, employee_user.id, payload)
        assert review.self_rating == rating
    else:
        with pytest.raises(ValidationFailedError) as exc:
            _service(db_session).submit_self_review(appraisal.id, employee_user.id, payload)
        assert exc.value.details["errors"][0]["field"] == "self_rating"
        assert _status_of(db_session, appraisal.id) == "pending"


def test_self_review_rejects_blank_text(db_session, employee_user, make_appraisal, self_review_payload):
    appraisal = make_appraisal(employee_user)
    payload = dict(self_review_payload, challenges="   ")
    del payload["achievements"]

    with pytest.raises(ValidationFailedError) as exc:
        _service(db_session).submit_self_review(appraisal.id, employee_user.id, payload)

    fields = {e["field"] for e in exc.value.details["errors"]}
    assert fields == {"challenges", "achievements"}


# --- submit_manager_review ---

def test_manager_review_round_trip(db_session, employee_user, manager_user, make_appraisal, make_review):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.SELF_REVIEW)
    make_review(appraisal)

    _service(db_session).submit_manager_review(
        appraisal.id, manager_user.role, manager_user.id,
        {"manager_comments": "Strong quarter", "manager_rating": 4},
    )

    stored = db_session.query(Review).filter(Review.appraisal_id == appraisal.id).one()
    assert stored.manager_comments == "Strong quarter"
    assert stored.manager_rating == 4
    assert stored.manager_id == manager_user.id
    # self-review content untouched
    assert stored.strengths == "Ships reliably"
    assert stored.self_rating == 4
    assert _status_of(db_session, appraisal.id) == "pm-review"


def test_manager_review_can_be_revised_in_pm_review(db_session, employee_user, manager_user, make_appraisal, make_review):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.PM_REVIEW)
    make_review(appraisal, manager_comments="Draft", manager_rating=3)

    review = _service(db_session).submit_manager_review(
        appraisal.id, UserRole.MANAGER, manager_user.id,
        {"manager_comments": "Final notes", "manager_rating": 5},
    )

    assert review.manager_comments == "Final notes"
    assert review.manager_rating == 5
    assert _status_of(db_session, appraisal.id) == "pm-review"


def test_manager_review_without_self_review_fails_precondition(db_session, employee_user, manager_user, make_appraisal, make_review):
    """Scenario C: the self-review disappeared before the manager got to it."""
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.SELF_REVIEW)
    review = make_review(appraisal)
    db_session.delete(review)
    db_session.commit()

    with pytest.raises(PreconditionFailedError):
        _service(db_session).submit_manager_review(
            appraisal.id, UserRole.MANAGER, manager_user.id,
            {"manager_comments": "Looks good", "manager_rating": 4},
        )
    assert _status_of(db_session, appraisal.id) == "self-review"


@pytest.mark.parametrize("role", [UserRole.EMPLOYEE, UserRole.HR, "intern"])
def test_manager_review_requires_manager_or_admin(db_session, employee_user, make_appraisal, make_review, role):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.SELF_REVIEW)
    make_review(appraisal)

    with pytest.raises(AccessDeniedError):
        _service(db_session).submit_manager_review(
            appraisal.id, role, employee_user.id,
            {"manager_comments": "Self-praise", "manager_rating": 5},
        )


def test_manager_review_role_checked_before_lookup(db_session, employee_user):
    with pytest.raises(AccessDeniedError):
        _service(db_session).submit_manager_review(
            9999, UserRole.EMPLOYEE, employee_user.id, {"manager_comments": "x", "manager_rating": 3}
        )


def test_manager_review_in_pending_is_invalid_state(db_session, employee_user, admin_user, make_appraisal):
    appraisal = make_appraisal(employee_user)

    with pytest.raises(InvalidStateError):
        _service(db_session).submit_manager_review(
            appraisal.id, UserRole.ADMIN, admin_user.id, {"manager_comments": "Early", "manager_rating": 3}
        )


@pytest.mark.parametrize("rating,ok", [(0, False), (1, True), (5, True), (6, False)])
def test_manager_rating_boundaries(db_session, employee_user, manager_user, make_appraisal, make_review, rating, ok):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.SELF_REVIEW)
    make_review(appraisal)
    payload = {"manager_comments": "Solid", "manager_rating": rating}
    service = _service(db_session)

    if ok:
        assert service.submit_manager_review(appraisal.id, UserRole.MANAGER, manager_user.id, payload).manager_rating == rating
    else:
        with pytest.raises(ValidationFailedError):
            service.submit_manager_review(appraisal.id, UserRole.MANAGER, manager_user.id, payload)


# --- finalize_appraisal ---

def test_hr_finalizes_from_hr_review(db_session, employee_user, make_appraisal):
    """Scenario D."""
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.HR_REVIEW)

    finalized = _service(db_session).finalize_appraisal(appraisal.id, UserRole.HR, {"overall_rating": 4})

    assert finalized.status == "completed"
    assert finalized.overall_rating == 4
    stored = db_session.get(Appraisal, appraisal.id)
    assert stored.overall_rating == 4


def test_finalize_accepts_comments_without_storing_them(db_session, employee_user, make_appraisal):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.PM_REVIEW)

    finalized = _service(db_session).finalize_appraisal(
        appraisal.id, "admin", {"overall_rating": 3, "comments": "Calibrated with the panel"}
    )

    assert finalized.status == "completed"
    assert not hasattr(finalized, "comments")


@pytest.mark.parametrize("rating,ok", [(0, False), (1, True), (5, True), (6, False)])
def test_overall_rating_boundaries(db_session, employee_user, make_appraisal, rating, ok):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.HR_REVIEW)
    service = _service(db_session)

    if ok:
        assert service.finalize_appraisal(appraisal.id, UserRole.HR, {"overall_rating": rating}).overall_rating == rating
    else:
        with pytest.raises(ValidationFailedError):
            service.finalize_appraisal(appraisal.id, UserRole.HR, {"overall_rating": rating})
        assert _status_of(db_session, appraisal.id) == "hr-review"


def test_finalize_requires_hr(db_session, employee_user, make_appraisal):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.HR_REVIEW)

    with pytest.raises(AccessDeniedError) as exc:
        _service(db_session).finalize_appraisal(appraisal.id, UserRole.MANAGER, {"overall_rating": 4})

    assert exc.value.message == DenialReason.HR_ONLY_FINALIZE


@pytest.mark.parametrize("status", [AppraisalStatus.PENDING, AppraisalStatus.SELF_REVIEW, AppraisalStatus.COMPLETED])
def test_finalize_outside_its_window_is_invalid_state(db_session, employee_user, make_appraisal, status):
    appraisal = make_appraisal(employee_user, status=status)

    with pytest.raises(InvalidStateError):
        _service(db_session).finalize_appraisal(appraisal.id, UserRole.HR, {"overall_rating": 4})


# --- update_status ---

def test_update_status_follows_the_edge_table(db_session, employee_user, manager_user, hr_user, make_appraisal):
    appraisal = make_appraisal(employee_user)
    service = _service(db_session)

    service.update_status(appraisal.id, employee_user.role, employee_user.id, "self-review")
    service.update_status(appraisal.id, manager_user.role, manager_user.id, "pm-review")
    service.update_status(appraisal.id, hr_user.role, hr_user.id, "hr-review")
    result = service.update_status(appraisal.id, hr_user.role, hr_user.id, "completed")

    assert result.status == "completed"
    # no review side effects
    assert _review_count(db_session, appraisal.id) == 0


def test_update_status_rejects_unknown_status(db_session, admin_user):
    with pytest.raises(InvalidArgumentError) as exc:
        _service(db_session).update_status(1, UserRole.ADMIN, admin_user.id, "archived")
    assert "completed" in exc.value.details["allowed"]


def test_update_status_denial_carries_authorizer_reason(db_session, employee_user, make_appraisal):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.SELF_REVIEW)

    with pytest.raises(AccessDeniedError) as exc:
        _service(db_session).update_status(appraisal.id, UserRole.EMPLOYEE, employee_user.id, "pm-review")

    assert exc.value.message == DenialReason.MANAGER_ONLY_PM_REVIEW
    assert exc.value.details == {
        "current_status": "self-review",
        "requested_status": "pm-review",
        "required_role": "manager",
    }


def test_update_status_for_missing_appraisal(db_session, hr_user):
    with pytest.raises(NotFoundError):
        _service(db_session).update_status(9999, UserRole.HR, hr_user.id, "completed")


def test_admin_can_reopen_a_completed_appraisal(db_session, employee_user, admin_user, make_appraisal):
    """
    Scenario E: the admin override currently reaches out of 'completed'.
    Whether that escape hatch should stay is an open product question.
    """
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.COMPLETED, overall_rating=4)

    reopened = _service(db_session).update_status(appraisal.id, UserRole.ADMIN, admin_user.id, "pending")

    assert reopened.status == "pending"
    assert reopened.overall_rating == 4


# --- describe_workflow ---

def test_describe_workflow_for_owner(db_session, employee_user, make_appraisal):
    appraisal = make_appraisal(employee_user)

    check = _service(db_session).describe_workflow(appraisal.id, employee_user.role, employee_user.id)

    assert check.status == AppraisalStatus.PENDING
    assert check.next_status == AppraisalStatus.SELF_REVIEW
    assert check.caller.is_owner
    assert check.permissions.can_transition
    assert check.review is None


def test_describe_workflow_explains_denial(db_session, employee_user, hr_user, make_appraisal, make_review):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.SELF_REVIEW)
    make_review(appraisal)

    check = _service(db_session).describe_workflow(appraisal.id, hr_user.role, hr_user.id)

    assert not check.permissions.can_transition
    assert check.permissions.reason == DenialReason.MANAGER_ONLY_PM_REVIEW
    assert check.review.has_self_review
    assert not check.review.has_manager_review


def test_describe_workflow_on_completed(db_session, employee_user, hr_user, make_appraisal):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.COMPLETED)

    check = _service(db_session).describe_workflow(appraisal.id, hr_user.role, hr_user.id)

    assert check.next_status is None
    assert check.permissions.reason == DenialReason.TERMINAL


# --- concurrency ---

def test_stale_status_write_is_rejected(db_session, employee_user, make_appraisal):
    """Two finalizations read 'hr-review'; only the first write lands."""
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.HR_REVIEW)
    store = AppraisalStore(db_session)
    loaded = store.get(appraisal.id)

    store.transition(loaded, expected=AppraisalStatus.HR_REVIEW, new_status=AppraisalStatus.COMPLETED, overall_rating=4)

    with pytest.raises(TransitionConflictError):
        store.transition(loaded, expected=AppraisalStatus.HR_REVIEW, new_status=AppraisalStatus.COMPLETED, overall_rating=2)


def test_racing_finalizations_have_one_winner(db_session, other_session, employee_user, make_appraisal):
    """The second finalization read 'hr-review' before the first one committed."""
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.HR_REVIEW)
    loser = _service(db_session)
    load = loser.appraisals.get
    winner_result = {}

    def load_then_lose_the_race(appraisal_id):
        loaded = load(appraisal_id)
        winner = _service(other_session).finalize_appraisal(appraisal_id, UserRole.HR, {"overall_rating": 5})
        winner_result.update(status=winner.status, overall_rating=winner.overall_rating)
        return loaded

    loser.appraisals.get = load_then_lose_the_race

    with pytest.raises(TransitionConflictError):
        loser.finalize_appraisal(appraisal.id, UserRole.HR, {"overall_rating": 2})

    assert winner_result == {"status": "completed", "overall_rating": 5}


def test_status_write_on_deleted_appraisal_is_a_conflict(db_session, other_session, employee_user, make_appraisal):
    appraisal = make_appraisal(employee_user, status=AppraisalStatus.HR_REVIEW)
    store = AppraisalStore(db_session)
    loaded = store.get(appraisal.id)

    concurrent = AppraisalStore(other_session)
    concurrent.delete(concurrent.get(appraisal.id))

    with pytest.raises(TransitionConflictError):
        store.transition(loaded, expected=AppraisalStatus.HR_REVIEW, new_status=AppraisalStatus.COMPLETED)
