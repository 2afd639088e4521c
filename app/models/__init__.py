# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import user, appraisal, review

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .appraisal import Appraisal, AppraisalStatus
from .review import Review

__all__ = [
    "User",
    "UserRole",
    "Appraisal",
    "AppraisalStatus",
    "Review",
]
