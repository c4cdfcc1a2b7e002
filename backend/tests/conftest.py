"""
Notivate Backend - Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment is pointed at throwaway locations BEFORE any notivate
       import (the settings singleton reads it at import time). External
       capabilities are replaced by in-memory fakes; the usage store is a
       real file-backed SQLite database through aiosqlite.

Fixtures:
    ├── sqlite_session_factory: fresh SQLite database with all tables
    ├── upload_store:           UploadStore on a temp directory
    ├── fake_extractor / fake_synthesizer: scripted adapters that count calls
    ├── fast_retry:             RetryPolicy without sleeps
    ├── free_caller / premium_caller
    ├── sample_image_bytes, sample_guide_dict, sample_guide
    └── make_client:            httpx AsyncClient over ASGITransport with
                                dependency overrides
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./notivate_test.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="notivate_test_uploads_")
os.environ["SUPABASE_URL"] = "https://identity.test"
os.environ["SUPABASE_SERVICE_KEY"] = "service-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"

import copy  # noqa: E402
import uuid  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from notivate.config import Settings  # noqa: E402
from notivate.database import Base, build_engine, build_session_factory  # noqa: E402
from notivate.models.profile import SubscriptionTier  # noqa: E402
from notivate.schemas.study_guide import StudyGuide  # noqa: E402
from notivate.services.base import GuideSynthesizer, TextExtractor  # noqa: E402
from notivate.services.identity_service import CallerContext  # noqa: E402
from notivate.services.resilience import RetryPolicy  # noqa: E402
from notivate.services.upload_store import UploadStore  # noqa: E402

import notivate.models  # noqa: E402,F401


# ══════════════════════════════════════════════════════════════════════════
# Fake external capabilities
# ══════════════════════════════════════════════════════════════════════════

class FakeExtractor(TextExtractor):
    """Returns `text` (or raises `error`) and records every call."""

    def __init__(self, text: str = "Photosynthesis converts light energy into chemical energy."):
        self.text = text
        self.error: Optional[Exception] = None
        self.calls = 0

    async def extract_text(self, image_bytes: bytes) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text

    async def health_check(self) -> bool:
        return True


class FakeSynthesizer(GuideSynthesizer):
    """Returns `guide` (or raises `error`) and records the texts it was given."""

    def __init__(self, guide: StudyGuide):
        self.guide = guide
        self.error: Optional[Exception] = None
        self.received = []

    @property
    def calls(self) -> int:
        return len(self.received)

    async def synthesize_guide(self, text: str) -> StudyGuide:
        self.received.append(text)
        if self.error is not None:
            raise self.error
        return self.guide

    async def health_check(self) -> bool:
        return True


# ══════════════════════════════════════════════════════════════════════════
# Data fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def sample_image_bytes():
    """Smallest JPEG: SOI + JFIF APP0 header + EOI. Not a real photo."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )


_SAMPLE_GUIDE = {
    "title": "Photosynthesis Basics",
    "subject": "Biology",
    "summary": "How plants turn light into chemical energy.",
    "sections": [
        {
            "heading": "Light Reactions",
            "content": "Occur in the thylakoid membranes and produce ATP and NADPH.",
            "keyTerms": ["thylakoid", "ATP", "NADPH"],
            "bullets": ["Needs light", "Releases oxygen"],
        },
        {
            "heading": "Calvin Cycle",
            "content": "Uses ATP and NADPH to fix carbon dioxide into sugar.",
            "keyTerms": ["Calvin cycle", "RuBisCO"],
            "bullets": ["Happens in the stroma"],
        },
    ],
    "diagrams": [
        {
            "type": "flowchart",
            "title": "Energy flow",
            "diagramSource": "flowchart LR\n  Light --> ATP\n  ATP --> Sugar",
        }
    ],
    "quizQuestions": [
        {"question": "Where do light reactions occur?", "answer": "Thylakoids", "difficulty": "easy"},
        {"question": "What does RuBisCO do?", "answer": "Fixes CO2", "difficulty": "medium"},
        {"question": "Why is NADPH needed?", "answer": "It supplies electrons", "difficulty": "hard"},
    ],
}


@pytest.fixture
def sample_guide_dict():
    """A valid study guide in wire (camelCase) form. Fresh copy per test."""
    return copy.deepcopy(_SAMPLE_GUIDE)


@pytest.fixture
def sample_guide(sample_guide_dict):
    return StudyGuide.model_validate(sample_guide_dict)


@pytest.fixture
def free_caller():
    return CallerContext(
        user_id=uuid.uuid4(),
        email="student@example.com",
        subscription_tier=SubscriptionTier.FREE,
    )


@pytest.fixture
def premium_caller():
    return CallerContext(
        user_id=uuid.uuid4(),
        email="scholar@example.com",
        subscription_tier=SubscriptionTier.PREMIUM,
    )


# ══════════════════════════════════════════════════════════════════════════
# Service fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def fake_synthesizer(sample_guide):
    return FakeSynthesizer(sample_guide)


@pytest.fixture
def fast_retry():
    """Three attempts, no waiting between them."""
    return RetryPolicy(max_attempts=3, min_wait=0, max_wait=0, jitter=0)


@pytest.fixture
def upload_store(tmp_path):
    return UploadStore(str(tmp_path / "uploads"))


@pytest_asyncio.fixture
async def sqlite_session_factory(tmp_path):
    """
    A real, file-backed SQLite database with every table created.

    File-backed (not :memory:) so concurrent sessions see the same data
    through separate connections.
    """
    settings = Settings(log_level="WARNING")
    engine = build_engine(settings, url=f"sqlite+aiosqlite:///{tmp_path / 'notivate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()


@pytest.fixture
def make_client():
    """
    Builds an AsyncClient for a fresh app with the given dependency overrides.

    Usage:
        async with make_client({get_caller: lambda: caller}) as client:
            response = await client.get("/api/usage")
    """
    from notivate.main import create_app

    def _make(overrides):
        app = create_app()
        app.dependency_overrides.update(overrides)
        transport = ASGITransport(app=app)
        return AsyncClient(transport=transport, base_url="http://test")

    return _make
