"""Helpers shared by the test modules."""

from datetime import datetime, timedelta

from medilocker.app import Medilocker
from medilocker.config import Settings
from medilocker.models import UserRole
from medilocker.security.identity import Identity

TEST_SECRET = "test-secret-key-for-medilocker-tests"


class MutableClock:
    """Clock whose time only moves when a test moves it."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        """Move forward by a ``timedelta(**kwargs)``."""
        self.now += timedelta(**kwargs)
        return self.now


def make_settings(tmp_path, database_url: str = "sqlite://", **overrides) -> Settings:
    """Build settings isolated from the developer's environment."""
    values = {
        "database_url": database_url,
        "jwt_secret_key": TEST_SECRET,
        "environment": "testing",
        "local_storage_path": str(tmp_path / "blobs"),
        "storage_backend": "local",
    }
    values.update(overrides)
    return Settings(**values)


def register_doctor(
    app: Medilocker,
    doctor_id: str,
    name: str = "Dr. Rivera",
    specialization: str = "Cardiology",
    verified: bool = True,
) -> Identity:
    """Register a doctor profile and return its identity."""
    app.profiles.register_doctor(
        doctor_id,
        {
            "display_name": name,
            "specialization": specialization,
            "license_number": f"LIC-{doctor_id}",
        },
    )
    if verified:
        app.profiles.set_doctor_verified(doctor_id)
    return Identity(
        id=doctor_id, role=UserRole.DOCTOR, verified=verified, display_name=name
    )


def metadata(record_type: str = "lab_report", **overrides) -> dict:
    """Valid record metadata."""
    values = {
        "title": "Blood panel",
        "record_type": record_type,
        "commit_message": "Initial upload of results",
        "tags": ["diabetes"],
    }
    values.update(overrides)
    return values
