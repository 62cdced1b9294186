"""Tests for peer endorsements."""

import pytest

from medilocker.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from medilocker.services.endorsement_service import DUPLICATE_MESSAGE
from tests.helpers import register_doctor


class TestEndorse:
    """Endorsing peers."""

    def test_endorsement_updates_target_statistics(self, app, doctor, other_doctor):
        """The target's skill counts move with each endorsement."""
        endorsement = app.endorsements.endorse(
            doctor, other_doctor.id, {"skill": "Chest imaging", "note": "Sharp eyes"}
        )

        assert endorsement.endorser_id == doctor.id
        assert endorsement.skill == "Chest imaging"
        profile = app.aggregator.get_profile(other_doctor.id)
        assert profile.endorsement_counts == {"Chest imaging": 1}

    def test_skills_are_counted_across_endorsers(self, app, doctor, other_doctor):
        """Counts aggregate over every endorser."""
        third = register_doctor(app, "doctor-3", name="Dr. Haas")
        app.endorsements.endorse(doctor, other_doctor.id, {"skill": "Chest imaging"})
        app.endorsements.endorse(third, other_doctor.id, {"skill": "Chest imaging"})
        app.endorsements.endorse(third, other_doctor.id, {"skill": "Ultrasound"})

        profile = app.aggregator.get_profile(other_doctor.id)
        assert profile.endorsement_counts == {"Chest imaging": 2, "Ultrasound": 1}
        assert len(app.endorsements.list_endorsements(other_doctor.id)) == 3

    def test_duplicate(self, app, doctor, other_doctor):
        """The same skill can be endorsed once per endorser."""
        app.endorsements.endorse(doctor, other_doctor.id, {"skill": "Chest imaging"})
        with pytest.raises(ConflictError) as exc_info:
            app.endorsements.endorse(doctor, other_doctor.id, {"skill": "Chest imaging"})

        assert exc_info.value.message == DUPLICATE_MESSAGE
        assert app.aggregator.get_profile(other_doctor.id).total_endorsements == 1

    def test_self_endorsement(self, app, doctor):
        """Doctors cannot vouch for themselves."""
        with pytest.raises(ValidationError):
            app.endorsements.endorse(doctor, doctor.id, {"skill": "Cardiology"})

    def test_unverified_target(self, app, doctor):
        """Only verified doctors can receive endorsements."""
        register_doctor(app, "doctor-8", verified=False)
        with pytest.raises(ValidationError):
            app.endorsements.endorse(doctor, "doctor-8", {"skill": "Cardiology"})

    def test_unknown_target(self, app, doctor):
        """The target must exist."""
        with pytest.raises(NotFoundError):
            app.endorsements.endorse(doctor, "ghost", {"skill": "Cardiology"})

    def test_caller_must_be_verified_doctor(self, app, patient, other_doctor):
        """Patients and unverified doctors cannot endorse."""
        rookie = register_doctor(app, "doctor-9", verified=False)
        for caller in (patient, rookie):
            with pytest.raises(AuthorizationError):
                app.endorsements.endorse(caller, other_doctor.id, {"skill": "Radiology"})

    @pytest.mark.audit_required
    def test_endorsement_is_audited(self, app, doctor, other_doctor):
        """Endorsements are recorded against the target doctor."""
        app.endorsements.endorse(doctor, other_doctor.id, {"skill": "Chest imaging"})

        entries = app.audit.list_for_resource(other_doctor.id)
        assert [e.action for e in entries] == ["doctor_endorsed"]
        assert entries[0].details == {"skill": "Chest imaging"}
