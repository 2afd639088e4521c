"""
User Model with role-based access.
Credentials live here only so the API can resolve a caller; the
appraisal workflow consumes nothing but the user's id and role.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base


class UserRole(str, enum.Enum):
    """
    User roles as they take part in the appraisal workflow.

    - ADMIN: may force any status transition
    - HR: moves appraisals through HR review and finalizes them
    - MANAGER: annotates self-reviews of their team
    - EMPLOYEE: submits their own self-review
    """
    ADMIN = "admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    # Free-form department label; managers see appraisals of their own department
    department = Column(String, nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    appraisals = relationship("Appraisal", back_populates="employee", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def sees_all_appraisals(self) -> bool:
        """Admin and HR are not restricted to a team or to their own records."""
        return self.role in [UserRole.ADMIN, UserRole.HR]
