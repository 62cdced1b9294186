"""Test configuration for Medilocker.

Shared fixtures: settings pointed at a throwaway SQLite database, a
controllable clock, a local blob store and registered patients and doctors.
"""

import os
from datetime import datetime
from typing import Callable, List, Optional

import pytest

# Set before Settings is ever instantiated
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-medilocker-tests")

from medilocker.app import Medilocker, create_app  # noqa: E402
from medilocker.config import Settings  # noqa: E402
from medilocker.core.database import (  # noqa: E402
    build_engine,
    build_session_factory,
    init_db,
)
from medilocker.models import AccessLevel, AccessRequest, UserRole  # noqa: E402
from medilocker.schemas.records import UploadedFile  # noqa: E402
from medilocker.security.identity import Identity  # noqa: E402
from medilocker.storage.local_backend import LocalBlobStore  # noqa: E402
from tests.helpers import (  # noqa: E402
    TEST_SECRET,
    MutableClock,
    make_settings,
    register_doctor,
)

START = datetime(2024, 3, 10, 9, 0, 0)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising concurrent writers"
    )
    config.addinivalue_line(
        "markers", "audit_required: mark test as asserting audit trail entries"
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings backed by an in-memory database."""
    return make_settings(tmp_path)


@pytest.fixture
def clock() -> MutableClock:
    """A clock frozen at a known instant."""
    return MutableClock(START)


@pytest.fixture
def engine(settings):
    """Engine with every table created."""
    engine = build_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return build_session_factory(engine)


@pytest.fixture
def blob_store(tmp_path, clock) -> LocalBlobStore:
    """Local blob store under the test's temporary directory."""
    return LocalBlobStore(
        base_path=str(tmp_path / "blobs"), signing_key=TEST_SECRET, clock=clock
    )


@pytest.fixture
def app(settings, session_factory, blob_store, clock) -> Medilocker:
    """Fully wired application."""
    return create_app(
        settings=settings,
        session_factory=session_factory,
        blob_store=blob_store,
        clock=clock,
    )


@pytest.fixture
def patient(app) -> Identity:
    """A registered patient."""
    app.profiles.register_patient("patient-1", {"display_name": "Asha Patel"})
    return Identity(id="patient-1", role=UserRole.PATIENT, display_name="Asha Patel")


@pytest.fixture
def other_patient(app) -> Identity:
    """A second registered patient."""
    app.profiles.register_patient("patient-2", {"display_name": "Tomas Lind"})
    return Identity(id="patient-2", role=UserRole.PATIENT, display_name="Tomas Lind")


@pytest.fixture
def doctor(app) -> Identity:
    """A registered, verified doctor."""
    return register_doctor(app, "doctor-1")


@pytest.fixture
def other_doctor(app) -> Identity:
    """A second registered, verified doctor."""
    return register_doctor(app, "doctor-2", name="Dr. Okafor", specialization="Radiology")


@pytest.fixture
def upload() -> Callable[..., UploadedFile]:
    """Factory for uploaded files."""

    def make(
        file_name: str = "report.pdf",
        data: bytes = b"%PDF-1.4 test content",
        content_type: Optional[str] = "application/pdf",
    ) -> UploadedFile:
        return UploadedFile(file_name=file_name, data=data, content_type=content_type)

    return make


@pytest.fixture
def grant(app, clock) -> Callable[..., AccessRequest]:
    """Factory creating an approved grant after a delay of ``after_hours``."""

    def make(
        doctor: Identity,
        patient: Identity,
        record_types: List[str],
        access_level: AccessLevel = AccessLevel.READ,
        expiry_days: int = 30,
        after_hours: float = 0,
    ) -> AccessRequest:
        request = app.grants.create(
            doctor.id,
            patient.id,
            "Follow-up on recent test results",
            access_level=access_level,
            record_types=record_types,
            expiry_days=expiry_days,
        )
        if after_hours:
            clock.advance(hours=after_hours)
        return app.grants.respond(request.id, patient.id, approve=True)

    return make
