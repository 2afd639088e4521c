from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
import enum


class AppraisalStatus(str, enum.Enum):
    PENDING = "pending"
    SELF_REVIEW = "self-review"
    PM_REVIEW = "pm-review"
    HR_REVIEW = "hr-review"
    COMPLETED = "completed"

    @classmethod
    def values(cls):
        return [s.value for s in cls]


# Lifecycle order; each status may only advance to the one after it
STATUS_CHAIN = [
    AppraisalStatus.PENDING,
    AppraisalStatus.SELF_REVIEW,
    AppraisalStatus.PM_REVIEW,
    AppraisalStatus.HR_REVIEW,
    AppraisalStatus.COMPLETED,
]


class Appraisal(Base):
    __tablename__ = "appraisals"
    __table_args__ = (
        CheckConstraint(
            "overall_rating IS NULL OR (overall_rating >= 1 AND overall_rating <= 5)",
            name="ck_appraisal_overall_rating_range",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    appraisal_cycle = Column(String, nullable=False, index=True)  # e.g. "2024-Q1"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    overall_rating = Column(Integer, nullable=True)  # set at finalization
    # Stored as the enum value; written only by AppraisalWorkflowService
    status = Column(String, default=AppraisalStatus.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("User", back_populates="appraisals")
    reviews = relationship(
        "Review",
        back_populates="appraisal",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Appraisal {self.id} {self.appraisal_cycle} [{self.status}]>"

    @property
    def current_status(self) -> AppraisalStatus:
        return AppraisalStatus(self.status)
