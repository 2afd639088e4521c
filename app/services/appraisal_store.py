"""
Data access for appraisals and their reviews.

Status writes are conditional on the status the caller read, so two
requests racing on the same appraisal cannot both win.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, TransitionConflictError
from app.models.appraisal import Appraisal, AppraisalStatus
from app.models.review import Review
from app.models.user import User, UserRole
from app.services.base import BaseService


class AppraisalStore(BaseService):

    def find(self, appraisal_id: int) -> Optional[Appraisal]:
        return self.db.query(Appraisal).filter(Appraisal.id == appraisal_id).first()

    def get(self, appraisal_id: int) -> Appraisal:
        appraisal = self.find(appraisal_id)
        if appraisal is None:
            raise NotFoundError("Appraisal not found")
        return appraisal

    def list_visible(
        self,
        user: User,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
        appraisal_cycle: Optional[str] = None,
        department: Optional[str] = None,
    ) -> List[Appraisal]:
        query = self.db.query(Appraisal).join(User, Appraisal.employee_id == User.id)

        if user.role == UserRole.MANAGER and user.department:
            query = query.filter(User.department == user.department)
        elif user.role == UserRole.EMPLOYEE:
            query = query.filter(Appraisal.employee_id == user.id)

        if employee_id is not None:
            query = query.filter(Appraisal.employee_id == employee_id)
        if status:
            query = query.filter(Appraisal.status == status)
        if appraisal_cycle:
            query = query.filter(Appraisal.appraisal_cycle == appraisal_cycle)
        if department:
            query = query.filter(User.department == department)

        return query.order_by(Appraisal.created_at.desc(), Appraisal.id.desc()).all()

    def create(self, employee_id: int, appraisal_cycle: str, start_date, end_date) -> Appraisal:
        if self.db.get(User, employee_id) is None:
            raise NotFoundError("Employee not found")
        appraisal = Appraisal(
            employee_id=employee_id,
            appraisal_cycle=appraisal_cycle,
            start_date=start_date,
            end_date=end_date,
            status=AppraisalStatus.PENDING.value,
        )
        self.db.add(appraisal)
        self.commit()
        self.db.refresh(appraisal)
        return appraisal

    def update_fields(self, appraisal: Appraisal, fields: Dict[str, Any]) -> Appraisal:
        for key, value in fields.items():
            setattr(appraisal, key, value)
        self.commit()
        self.db.refresh(appraisal)
        return appraisal

    def delete(self, appraisal: Appraisal) -> None:
        self.db.delete(appraisal)
        self.commit()

    def transition(
        self,
        appraisal: Appraisal,
        expected: AppraisalStatus,
        new_status: AppraisalStatus,
        **fields: Any,
    ) -> None:
        """
        Write `new_status` (plus any extra columns) only if the row still has
        `expected`. Nothing is committed here.
        """
        # Read before the write; a rollback expires the instance and the row may be gone
        appraisal_id = appraisal.id
        expected_value = AppraisalStatus(expected).value
        values = {"status": AppraisalStatus(new_status).value, **fields}
        updated = (
            self.db.query(Appraisal)
            .filter(Appraisal.id == appraisal_id, Appraisal.status == expected_value)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            self.log_warning(
                f"Stale status write rejected for appraisal {appraisal_id}",
                appraisal_id=appraisal_id,
                expected_status=expected_value,
            )
            self.db.rollback()
            raise TransitionConflictError()
        self.db.expire(appraisal)


class ReviewStore(BaseService):

    def find_for(self, appraisal_id: int, employee_id: int) -> Optional[Review]:
        return (
            self.db.query(Review)
            .filter(Review.appraisal_id == appraisal_id, Review.employee_id == employee_id)
            .first()
        )

    def upsert(self, appraisal_id: int, employee_id: int, fields: Dict[str, Any]) -> Review:
        """
        Create or update the single review keyed by (appraisal_id, employee_id).
        The unique constraint is the final arbiter when two inserts race.
        """
        review = self.find_for(appraisal_id, employee_id)
        if review is None:
            review = Review(appraisal_id=appraisal_id, employee_id=employee_id, **fields)
            self.db.add(review)
        else:
            for key, value in fields.items():
                setattr(review, key, value)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            self.log_warning(
                f"Concurrent review insert for appraisal {appraisal_id}",
                appraisal_id=appraisal_id,
            )
            raise TransitionConflictError("Review was created concurrently, retry the request") from e
        return review

    def annotate(self, review: Review, manager_id: int, comments: str, rating: int) -> Review:
        review.manager_id = manager_id
        review.manager_comments = comments
        review.manager_rating = rating
        self.db.flush()
        return review
