from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Review(Base):
    """
    Self-assessment of one employee for one appraisal, later annotated by a manager.
    At most one row exists per (appraisal_id, employee_id).
    """
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("appraisal_id", "employee_id", name="uq_review_appraisal_employee"),
        CheckConstraint("self_rating >= 1 AND self_rating <= 5", name="ck_review_self_rating_range"),
        CheckConstraint(
            "manager_rating IS NULL OR (manager_rating >= 1 AND manager_rating <= 5)",
            name="ck_review_manager_rating_range",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    appraisal_id = Column(Integer, ForeignKey("appraisals.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    strengths = Column(Text, nullable=False)
    improvements = Column(Text, nullable=False)
    achievements = Column(Text, nullable=False)
    challenges = Column(Text, nullable=False)
    self_rating = Column(Integer, nullable=False)

    manager_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    manager_comments = Column(Text, nullable=True)
    manager_rating = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    appraisal = relationship("Appraisal", back_populates="reviews")
    employee = relationship("User", foreign_keys=[employee_id])
    manager = relationship("User", foreign_keys=[manager_id])

    def __repr__(self):
        return f"<Review appraisal={self.appraisal_id} employee={self.employee_id}>"

    @property
    def has_manager_review(self) -> bool:
        return self.manager_comments is not None or self.manager_rating is not None
