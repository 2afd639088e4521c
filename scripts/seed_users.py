"""
Seed one user per role for local development.

    python -m scripts.seed_users
"""
from app.database import SessionLocal, init_db
from app.models.user import User, UserRole
from app.services.auth import get_password_hash

SEED_USERS = [
    ("admin@example.com", "Admin123!", UserRole.ADMIN, None, "System Admin"),
    ("hr@example.com", "Hr123456!", UserRole.HR, "HR", "Harriet Ross"),
    ("manager@example.com", "Manager123!", UserRole.MANAGER, "Engineering", "Morgan Lee"),
    ("employee@example.com", "Employee123!", UserRole.EMPLOYEE, "Engineering", "Evan Park"),
]


def create_user(db, email, password, role, department=None, full_name=None):
    # Check if user already exists to avoid unique constraint errors
    if db.query(User).filter(User.email == email).first():
        print(f"User {email} already exists. Skipping.")
        return

    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        department=department,
        full_name=full_name,
        is_active=True,
    )
    db.add(user)
    db.commit()
    print(f"Created {role.value} -> {email}")


def main():
    init_db()
    db = SessionLocal()
    try:
        for email, password, role, department, full_name in SEED_USERS:
            create_user(db, email, password, role, department, full_name)
    finally:
        db.close()


if __name__ == "__main__":
    main()
