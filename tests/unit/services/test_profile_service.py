"""Tests for profile registration and doctor discovery."""

import pytest

from medilocker.core.exceptions import ConflictError, NotFoundError, ValidationError
from tests.helpers import register_doctor


@pytest.fixture
def roster(app):
    """Three verified doctors with distinct statistics and one unverified."""
    register_doctor(app, "doc-a", name="Dr. Adams", specialization="Cardiology")
    register_doctor(app, "doc-b", name="Dr. Baker", specialization="Cardiology")
    register_doctor(app, "doc-c", name="Dr. Chen", specialization="Radiology")
    register_doctor(app, "doc-x", name="Dr. Xu", specialization="Oncology", verified=False)

    for _ in range(3):
        app.aggregator.on_new_case_approved("doc-a")
    app.aggregator.on_new_case_approved("doc-b")
    for _ in range(2):
        app.aggregator.on_new_case_approved("doc-c")

    app.aggregator.on_response_recorded("doc-a", 30)
    app.aggregator.on_response_recorded("doc-b", 2)
    app.aggregator.on_version_committed("doc-b", False, ["arrhythmia"])
    app.aggregator.on_version_committed("doc-c", False, ["fracture"])
    app.aggregator.on_endorsement_added("doc-b", "ECG reading")
    return app


class TestRegistration:
    """Creating and verifying profiles."""

    def test_patient_profile_starts_empty(self, app):
        """Counters start at zero."""
        profile = app.profiles.register_patient("p-9", {"display_name": "Lena Ruiz"})

        assert profile.total_records == 0
        assert profile.active_collaborators == 0
        assert app.profiles.get_patient("p-9").display_name == "Lena Ruiz"

    def test_duplicate_patient(self, app, patient):
        """Registering twice conflicts."""
        with pytest.raises(ConflictError):
            app.profiles.register_patient(patient.id, {"display_name": "Asha Patel"})

    def test_doctor_starts_unverified(self, app):
        """New doctors must be verified before they can act."""
        app.profiles.register_doctor(
            "doc-new", {"display_name": "Dr. Moss", "specialization": "Neurology"}
        )

        profile = app.profiles.get_doctor("doc-new")
        assert profile.is_verified is False
        assert profile.record_accuracy_score is None
        assert profile.average_response_time_hours is None
        assert app.profiles.set_doctor_verified("doc-new").is_verified is True

    def test_duplicate_doctor(self, app, doctor):
        """Registering a doctor twice conflicts."""
        with pytest.raises(ConflictError):
            register_doctor(app, doctor.id)

    def test_invalid_registration(self, app):
        """Names are required."""
        with pytest.raises(ValidationError):
            app.profiles.register_doctor("doc-bad", {"display_name": "D", "specialization": "GP"})

    def test_unknown_profiles(self, app):
        """Lookups of unknown ids fail."""
        with pytest.raises(NotFoundError):
            app.profiles.get_patient("ghost")
        with pytest.raises(NotFoundError):
            app.profiles.set_doctor_verified("ghost")


class TestDiscovery:
    """Ranking and filtering verified doctors."""

    def test_default_sort_by_cases(self, roster):
        """Busiest doctors come first and unverified ones are hidden."""
        page = roster.profiles.discover_doctors()

        assert [d.id for d in page.doctors] == ["doc-a", "doc-c", "doc-b"]
        assert page.total == 3
        assert page.total_pages == 1

    def test_sort_by_response_time_ascending(self, roster):
        """Fastest responders first; doctors without data last."""
        page = roster.profiles.discover_doctors(sort_by="average_response_time_hours")
        assert [d.id for d in page.doctors] == ["doc-b", "doc-a", "doc-c"]

    def test_sort_by_accuracy(self, roster):
        """Scored doctors rank above unscored ones."""
        page = roster.profiles.discover_doctors(sort_by="record_accuracy_score")
        assert page.doctors[0].id == "doc-b"

    def test_filters(self, roster):
        """Specialization, condition and minimum cases narrow the list."""
        profiles = roster.profiles
        assert [d.id for d in profiles.discover_doctors(specialization="Radiology").doctors] == [
            "doc-c"
        ]
        assert [d.id for d in profiles.discover_doctors(condition_tag="arrhythmia").doctors] == [
            "doc-b"
        ]
        assert [d.id for d in profiles.discover_doctors(min_cases=2).doctors] == ["doc-a", "doc-c"]

    def test_pagination(self, roster):
        """Pages are sliced after sorting."""
        page = roster.profiles.discover_doctors(page=2, limit=2)

        assert [d.id for d in page.doctors] == ["doc-b"]
        assert page.total == 3
        assert page.total_pages == 2

    def test_unknown_sort_field(self, roster):
        """Only whitelisted metrics can be sorted on."""
        with pytest.raises(ValidationError):
            roster.profiles.discover_doctors(sort_by="license_number")

    def test_specializations(self, roster):
        """Filter values come from verified doctors only."""
        filters = roster.profiles.list_specializations()

        assert filters.specializations == ["Cardiology", "Radiology"]
        assert filters.condition_tags == ["arrhythmia", "fracture"]
