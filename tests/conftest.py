import os
import tempfile

os.environ["DATABASE_URL"] = ""
os.environ["SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["OTP_ECHO"] = "true"
os.environ.setdefault("UPLOAD_FOLDER", tempfile.mkdtemp(prefix="school-portal-uploads-"))

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import create_document, ensure_indexes, get_db  # noqa: E402
from main import app  # noqa: E402
from otp import OtpStore, get_otp_store  # noqa: E402
from schemas import Faculty, Student, Subject  # noqa: E402
from security import ADMIN, FACULTY, STUDENT, create_token, hash_password, seed_admin  # noqa: E402


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def db():
    database = mongomock.MongoClient()["school_portal_test"]
    ensure_indexes(database)
    seed_admin(database)
    return database


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp_store(clock):
    return OtpStore(ttl_seconds=600, clock=clock)


@pytest.fixture
def client(db, otp_store):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_otp_store] = lambda: otp_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(db):
    admin = db["admin"].find_one({"adminId": "ADMIN"})
    return auth(create_token(admin["_id"], ADMIN))


@pytest.fixture
def make_faculty(db):
    def _make(name="Ms. Rao", faculty_id="F001", password="secret"):
        doc_id = create_document(db, "faculty", Faculty(
            name=name, faculty_id=faculty_id, password_hash=hash_password(password),
        ))
        return doc_id, auth(create_token(doc_id, FACULTY))
    return _make


@pytest.fixture
def make_student(db):
    def _make(name="Asha", class_name="10A", roll_no="1", mobile_no="9000000001", approved=True, subjects=None):
        doc_id = create_document(db, "student", Student(
            name=name, class_name=class_name, roll_no=roll_no, mobile_no=mobile_no,
            password_hash=hash_password("pw"), approved=approved, subjects=subjects or [],
        ))
        return doc_id, auth(create_token(doc_id, STUDENT))
    return _make


@pytest.fixture
def make_subject(db):
    def _make(name="Mathematics", code="MATH", class_name="10A", faculty=None):
        return create_document(db, "subject", Subject(
            name=name, code=code, class_name=class_name, faculty=faculty,
        ))
    return _make
