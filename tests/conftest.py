"""
Shared test fixtures for the grading pipeline.
Every external collaborator (GridFS, MongoDB, Vision, Gemini) is replaced by an
in-memory fake. Zero network calls.
"""
import asyncio
import copy
from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.errors import PersistenceFailed, SessionBusy, SessionNotFound
from app.models.session import DocumentKind, GradingSession, SessionStatus
from app.models.user import User
from app.services import Services
from app.services.extraction import ExtractionResult
from app.services.orchestrator import GradingOrchestrator
from app.services.submission import SubmissionFlow

TEST_TOKEN = "token-teacher-1"


class FakeObjectStore:
    def __init__(self, fail_buckets=()):
        self.blobs = {}
        self.uploads = []
        self.downloads = []
        self.delays = {}
        self.fail_buckets = set(fail_buckets)

    def put(self, bucket, key, data):
        self.blobs[(bucket, key)] = data

    async def upload(self, bucket, key, data, content_type=None):
        self.uploads.append((bucket, key))
        if bucket in self.fail_buckets:
            raise RuntimeError("storage unavailable")
        self.blobs[(bucket, key)] = data
        return key

    async def download(self, bucket, key):
        self.downloads.append((bucket, key))
        await asyncio.sleep(self.delays.get(bucket, 0))
        return self.blobs.get((bucket, key))

    async def exists(self, bucket, key):
        return (bucket, key) in self.blobs


class FakeSessionStore:
    """Mirrors SessionStore's state transitions on plain dicts."""

    def __init__(self):
        self.rows = {}
        self.extracted = []
        self.fail_extracted_writes = False
        self.created = 0
        self.leases = []

    def add(self, session: GradingSession):
        self.rows[session.id] = session.model_dump()

    async def create(self, user_id, question_paper_path, grading_rubric_path, answer_sheet_path,
                     additional_file_path=None):
        self.created += 1
        session = GradingSession(
            id=f"session_{self.created:04d}",
            user_id=user_id,
            question_paper_path=question_paper_path,
            grading_rubric_path=grading_rubric_path,
            answer_sheet_path=answer_sheet_path,
            additional_file_path=additional_file_path,
        )
        self.add(session)
        return session

    async def get(self, session_id):
        row = self.rows.get(session_id)
        return GradingSession(**copy.deepcopy(row)) if row else None

    async def list_for_user(self, user_id, limit=100):
        return [GradingSession(**r) for r in self.rows.values() if r["user_id"] == user_id]

    async def claim(self, session_id, lease_seconds):
        row = self.rows.get(session_id)
        if row is None:
            raise SessionNotFound(session_id)
        now = datetime.now(timezone.utc)
        lease = row["lease_expires_at"]
        if row["status"] == SessionStatus.PROCESSING and (lease is None or lease > now):
            raise SessionBusy(f"Session {session_id} is already being processed")
        row["status"] = SessionStatus.PROCESSING
        row["lease_expires_at"] = now + timedelta(seconds=lease_seconds)
        row["attempts"] += 1
        self.leases.append(lease_seconds)
        return GradingSession(**copy.deepcopy(row))

    async def complete(self, session_id, feedback, score, answers):
        row = self.rows[session_id]
        if row["status"] != SessionStatus.PROCESSING:
            raise PersistenceFailed("not processing")
        row.update(
            status=SessionStatus.COMPLETED,
            feedback=feedback,
            score=score,
            answers=[a.model_dump() for a in answers],
            attempts=0,
            last_error=None,
            lease_expires_at=None,
            completed_at=datetime.now(timezone.utc),
        )

    async def release(self, session_id, error):
        row = self.rows[session_id]
        row.update(status=SessionStatus.PENDING, last_error=error, lease_expires_at=None)
        return row["status"]

    async def mark_failed(self, session_id):
        row = self.rows.get(session_id)
        if row is None or row["status"] != SessionStatus.PENDING:
            return False
        row["status"] = SessionStatus.FAILED
        return True

    async def save_extracted_text(self, extracted):
        if self.fail_extracted_writes:
            raise PersistenceFailed("Failed to store extracted text: write refused")
        self.extracted.append(extracted)

    async def get_extracted_text(self, session_id):
        matches = [e for e in self.extracted if e.grading_session_id == session_id]
        return matches[-1] if matches else None


class StubExtractor:
    """Returns canned text per object key."""

    def __init__(self, texts=None, delay=0.0):
        self.texts = texts or {}
        self.calls = []
        self.delay = delay
        self.errors = {}

    async def extract(self, document_bytes, filename=""):
        self.calls.append(filename)
        await asyncio.sleep(self.delay)
        if filename in self.errors:
            raise self.errors[filename]
        return ExtractionResult(text=self.texts.get(filename, document_bytes.decode()), confidence=0.9)


class StubGrader:
    def __init__(self, reply="Feedback: correct. Score: 100/100"):
        self.reply = reply
        self.prompts = []
        self.error = None

    async def grade(self, prompt_text):
        self.prompts.append(prompt_text)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeAuth:
    def __init__(self, users=None):
        self.users = users or {}
        self.lookups = 0

    async def resolve(self, session_token):
        self.lookups += 1
        return self.users.get(session_token)


@pytest.fixture
def settings():
    return Settings(
        mongo_url="mongodb://localhost:27017",
        db_name="gradesense_test",
        google_credentials_path="/tmp/gcp.json",
        gemini_api_key="test-key",
        external_call_timeout_seconds=2.0,
        retry_base_delay_seconds=0.0,
    )


@pytest.fixture
def user():
    return User(user_id="user_teacher_1", email="teacher@example.com", name="Test Teacher")


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def session_store():
    return FakeSessionStore()


@pytest.fixture
def extractor():
    return StubExtractor()


@pytest.fixture
def grader():
    return StubGrader()


@pytest.fixture
def orchestrator(settings, session_store, object_store, extractor, grader):
    return GradingOrchestrator(settings, session_store, object_store, extractor, grader)


@pytest.fixture
def make_session(session_store, object_store, user):
    """Store three documents and a pending session referencing them."""

    def _make(question="What is 2+2?", rubric="Award 10 points for correct answer", answer="4",
              additional=None, session_id="session_abc123"):
        contents = {
            DocumentKind.QUESTION_PAPER: question,
            DocumentKind.GRADING_RUBRIC: rubric,
            DocumentKind.ANSWER_SHEET: answer,
            DocumentKind.ADDITIONAL_FILE: additional,
        }
        paths = {}
        for kind, text in contents.items():
            if text is None:
                continue
            key = f"{kind}.txt"
            object_store.put(DocumentKind.BUCKETS[kind], key, text.encode())
            paths[kind] = key
        session = GradingSession(
            id=session_id,
            user_id=user.user_id,
            question_paper_path=paths[DocumentKind.QUESTION_PAPER],
            grading_rubric_path=paths[DocumentKind.GRADING_RUBRIC],
            answer_sheet_path=paths[DocumentKind.ANSWER_SHEET],
            additional_file_path=paths.get(DocumentKind.ADDITIONAL_FILE),
        )
        session_store.add(session)
        return session

    return _make


@pytest.fixture
def services(settings, session_store, object_store, orchestrator, user):
    return Services(
        settings=settings,
        sessions=session_store,
        objects=object_store,
        orchestrator=orchestrator,
        submission=SubmissionFlow(settings, object_store, session_store, orchestrator),
        auth=FakeAuth({TEST_TOKEN: user}),
    )


@pytest.fixture
def client(services):
    from fastapi.testclient import TestClient
    from main import create_app

    with TestClient(create_app(services=services)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
