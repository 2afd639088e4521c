import pytest
import os
from datetime import date
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.database import Base, get_db
from app.main import app
from app.models.appraisal import Appraisal, AppraisalStatus
from app.models.review import Review
from app.models.user import User, UserRole
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
DEFAULT_PASSWORD = "Password123!"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the test transaction
    dbapi_connection.isolation_level = None

@event.listens_for(engine, "begin")
def _begin(conn):
    conn.exec_driver_sql("BEGIN")

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def connection():
    """One connection per test, inside a transaction that is always rolled back."""
    connection = engine.connect()
    transaction = connection.begin()

    yield connection

    transaction.rollback()
    connection.close()

def _session_on(connection):
    # Service commits and rollbacks only touch a savepoint, never the test transaction
    return TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

@pytest.fixture(scope="function")
def db_session(connection):
    session = _session_on(connection)
    yield session
    session.close()

@pytest.fixture(scope="function")
def other_session(connection):
    """A second session on the same data, standing in for a concurrent request."""
    session = _session_on(connection)
    yield session
    session.close()

@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow; hash the shared test password once."""
    from app.services import auth as auth_service
    return auth_service.get_password_hash(DEFAULT_PASSWORD)

@pytest.fixture(scope="function")
def make_user(db_session, password_hash):
    def _make_user(email, role, department=None, full_name=None, is_active=True):
        user = User(
            email=email,
            hashed_password=password_hash,
            role=role,
            department=department,
            full_name=full_name,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user

@pytest.fixture(scope="function")
def admin_user(make_user):
    return make_user("admin@alphacorp.com", UserRole.ADMIN, full_name="System Admin")

@pytest.fixture(scope="function")
def hr_user(make_user):
    return make_user("hr@alphacorp.com", UserRole.HR, department="HR")

@pytest.fixture(scope="function")
def manager_user(make_user):
    return make_user("manager@alphacorp.com", UserRole.MANAGER, department="Engineering")

@pytest.fixture(scope="function")
def employee_user(make_user):
    return make_user("employee@alphacorp.com", UserRole.EMPLOYEE, department="Engineering")

@pytest.fixture(scope="function")
def other_employee(make_user):
    return make_user("colleague@alphacorp.com", UserRole.EMPLOYEE, department="Sales")

@pytest.fixture(scope="function")
def make_appraisal(db_session):
    """Insert an appraisal directly, in any status."""
    def _make_appraisal(employee, status=AppraisalStatus.PENDING, cycle="2024-Q1", overall_rating=None):
        appraisal = Appraisal(
            employee_id=employee.id,
            appraisal_cycle=cycle,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 31),
            status=AppraisalStatus(status).value,
            overall_rating=overall_rating,
        )
        db_session.add(appraisal)
        db_session.commit()
        return appraisal
    return _make_appraisal

@pytest.fixture(scope="function")
def make_review(db_session):
    def _make_review(appraisal, **overrides):
        fields = {
            "strengths": "Ships reliably",
            "improvements": "Delegate more",
            "achievements": "Led the billing migration",
            "challenges": "Cross-team dependencies",
            "self_rating": 4,
        }
        fields.update(overrides)
        review = Review(appraisal_id=appraisal.id, employee_id=appraisal.employee_id, **fields)
        db_session.add(review)
        db_session.commit()
        return review
    return _make_review

@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens."""
    from app.services.auth import create_access_token

    def _get_token(user):
        return create_access_token(data={
            "sub": user.email,
            "role": user.role.value,
            "type": "access"
        })
    return _get_token

@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _auth_headers(user):
        return {"Authorization": f"Bearer {get_token(user)}"}
    return _auth_headers

@pytest.fixture(scope="function")
def self_review_payload():
    return {
        "strengths": "Clear communicator",
        "improvements": "Estimate more carefully",
        "achievements": "Shipped the reporting module",
        "challenges": "Legacy code in the invoicing service",
        "self_rating": 4,
    }

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
