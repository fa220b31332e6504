import io
import os
import tempfile

TEST_DB_FILE = "test_coursework.db"

# must be set before coursework.core.config is imported
os.environ.setdefault("COURSEWORK_DATABASE_URL", f"sqlite:///./{TEST_DB_FILE}")
os.environ.setdefault("COURSEWORK_UPLOAD_DIR", tempfile.mkdtemp(prefix="coursework-uploads-"))
os.environ.setdefault("COURSEWORK_BCRYPT_ROUNDS", "4")
os.environ.setdefault("COURSEWORK_MAIL_BACKEND", "console")

import fitz  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image, ImageDraw  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from coursework.core.config import settings  # noqa: E402
from coursework.core.deps import get_blob_store, get_db, get_mailer  # noqa: E402
from coursework.core.security import hash_password  # noqa: E402
from coursework.db.base import Base  # noqa: E402
from coursework.main import app  # noqa: E402
from coursework.models.assignment import Assignment  # noqa: E402
from coursework.models.notification import Notification  # noqa: E402
from coursework.models.submission import Submission  # noqa: E402
from coursework.models.user import User  # noqa: E402
from coursework.services.access_gate import AccessGate  # noqa: E402
from coursework.services.annotation_merge import AnnotationMergeEngine  # noqa: E402
from coursework.services.blob_store import LocalBlobStore  # noqa: E402
from coursework.services.directory import SqlDirectory  # noqa: E402
from coursework.services.grading import GradingWorkflow  # noqa: E402
from coursework.services.notifications import NotificationFanout  # noqa: E402
from coursework.services.submission_store import SubmissionStore  # noqa: E402

PASSWORD = "password123"
STAFF = "staff@example.com"
STUDENT = "s@x.edu"
MUTED_STUDENT = "muted@x.edu"
PENDING_STUDENT = "pending@x.edu"

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class RecordingMailer:
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))

    def to(self, email: str) -> list[tuple[str, str, str]]:
        return [m for m in self.sent if m[0] == email]


class FailingMailer:
    def __init__(self):
        self.attempts = 0

    def send(self, to: str, subject: str, body: str) -> None:
        self.attempts += 1
        raise ConnectionRefusedError("smtp server unavailable")


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed_data():
    """Seed a clean minimal dataset for each test."""
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        db.query(Notification).delete()
        db.query(Submission).delete()
        db.query(Assignment).delete()
        db.query(User).delete()
        db.commit()

        hashed = hash_password(PASSWORD)
        db.add_all(
            [
                User(email=STAFF, full_name="Staff One", role="staff",
                     approved=True, muted=False, hashed_password=hashed),
                User(email=STUDENT, full_name="Student One", role="student",
                     approved=True, muted=False, hashed_password=hashed),
                User(email=MUTED_STUDENT, full_name="Muted Student", role="student",
                     approved=True, muted=True, hashed_password=hashed),
                User(email=PENDING_STUDENT, full_name="Pending Student", role="student",
                     approved=False, muted=False, hashed_password=hashed),
            ]
        )
        assignment = Assignment(title="A1", description="Group theory problem set")
        db.add(assignment)
        db.commit()
        db.refresh(assignment)

        yield {"assignment_id": assignment.id}
    finally:
        db.close()


@pytest.fixture()
def assignment_id(seed_data) -> int:
    return seed_data["assignment_id"]


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def blobs(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def fanout(db, mailer):
    return NotificationFanout(db, mailer)


@pytest.fixture()
def store(db, blobs, fanout):
    return SubmissionStore(db, AccessGate(SqlDirectory(db)), blobs, fanout)


@pytest.fixture()
def workflow(db, blobs, fanout):
    return GradingWorkflow(
        db, blobs, AnnotationMergeEngine(), fanout, directory=SqlDirectory(db)
    )


@pytest.fixture()
def client(blobs, mailer):
    """Test client wired to the test DB, a temp blob store and a recording mailer."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blobs
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _pdf(pages: int = 2, width: float = 595, height: float = 842) -> bytes:
    doc = fitz.open()
    for n in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), f"Solution page {n + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def _png(size=(300, 424), draw: bool = True, mode: str = "RGBA", fmt: str = "PNG") -> bytes:
    background = (0, 0, 0, 0) if mode == "RGBA" else (255, 255, 255)
    img = Image.new(mode, size, background)
    if draw:
        pen = ImageDraw.Draw(img)
        pen.line((10, 10, size[0] - 10, size[1] - 10), fill=(220, 0, 0) if mode == "RGB" else (220, 0, 0, 255), width=6)
        pen.ellipse((40, 40, 120, 120), outline=(0, 0, 200) if mode == "RGB" else (0, 0, 200, 255), width=4)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def pdf_bytes() -> bytes:
    return _pdf(pages=2)


@pytest.fixture()
def make_pdf():
    return _pdf


@pytest.fixture()
def annotation_png() -> bytes:
    return _png()


@pytest.fixture()
def blank_png() -> bytes:
    return _png(draw=False)


@pytest.fixture()
def annotation_jpeg() -> bytes:
    return _png(mode="RGB", fmt="JPEG")


@pytest.fixture()
def corrupt_raster() -> bytes:
    return b"\x89PNG\r\n\x1a\nthis is not really an image"
