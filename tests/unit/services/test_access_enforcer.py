"""Tests for access enforcement."""

import pytest

from medilocker.core.exceptions import AuthorizationError
from medilocker.models import AccessLevel, AccessMode
from medilocker.services.access_enforcer import ACCESS_DENIED
from tests.helpers import register_doctor

READ = AccessMode.READ
WRITE = AccessMode.WRITE


class TestIsAuthorized:
    """Truth table over status, expiry, scope and level."""

    def test_no_grant(self, app, doctor, patient):
        """Without any request nothing is allowed."""
        assert not app.enforcer.is_authorized(doctor.id, patient.id, "lab_report", READ)

    def test_pending_request(self, app, doctor, patient):
        """Pending requests grant nothing."""
        app.grants.create(
            doctor.id, patient.id, "Reviewing lab results", record_types=["all"]
        )
        assert not app.enforcer.is_authorized(doctor.id, patient.id, "lab_report", READ)

    @pytest.mark.parametrize(
        "scope, record_type, level, mode, allowed",
        [
            (["lab_report"], "lab_report", AccessLevel.READ, READ, True),
            (["lab_report"], "lab_report", AccessLevel.READ, WRITE, False),
            (["lab_report"], "lab_report", AccessLevel.READ_WRITE, WRITE, True),
            (["lab_report"], "xray", AccessLevel.READ_WRITE, READ, False),
            (["all"], "xray", AccessLevel.READ, READ, True),
            (["all"], "prescription", AccessLevel.READ_WRITE, WRITE, True),
            (["lab_report", "xray"], "xray", AccessLevel.READ, READ, True),
            (["lab_report", "xray"], "all", AccessLevel.READ, READ, False),
            (["all"], "all", AccessLevel.READ, READ, True),
        ],
    )
    def test_approved_grant(
        self, app, doctor, patient, grant, scope, record_type, level, mode, allowed
    ):
        """Approved grants allow exactly their scope and level."""
        grant(doctor, patient, scope, access_level=level)
        assert app.enforcer.is_authorized(doctor.id, patient.id, record_type, mode) is allowed

    def test_lapsed_grant_is_denied_before_sweep(self, app, doctor, patient, grant, clock):
        """Expiry is re-checked at enforcement time."""
        grant(doctor, patient, ["all"], expiry_days=1)
        clock.advance(days=1, seconds=1)
        assert not app.enforcer.is_authorized(doctor.id, patient.id, "xray", READ)

    def test_revoked_grant(self, app, doctor, patient, grant):
        """Revocation denies immediately."""
        approved = grant(doctor, patient, ["all"])
        assert app.enforcer.is_authorized(doctor.id, patient.id, "xray", READ)

        app.grants.revoke(approved.id, patient.id)
        assert not app.enforcer.is_authorized(doctor.id, patient.id, "xray", READ)

    def test_denied_request(self, app, doctor, patient):
        """Denied requests grant nothing."""
        request = app.grants.create(
            doctor.id, patient.id, "Reviewing lab results", record_types=["all"]
        )
        app.grants.respond(request.id, patient.id, approve=False)
        assert not app.enforcer.is_authorized(doctor.id, patient.id, "xray", READ)

    def test_grant_is_per_patient(self, app, doctor, patient, other_patient, grant):
        """A grant on one patient says nothing about another."""
        grant(doctor, patient, ["all"])
        assert not app.enforcer.is_authorized(doctor.id, other_patient.id, "xray", READ)


class TestAuthorize:
    """Raising variants."""

    def test_returns_grant(self, app, doctor, patient, grant):
        """The covering grant is returned."""
        approved = grant(doctor, patient, ["xray"])
        assert app.enforcer.authorize(doctor.id, patient.id, "xray", READ).id == approved.id

    def test_denial_message_is_generic(self, app, doctor, patient, grant):
        """Denials never reveal which check failed."""
        grant(doctor, patient, ["xray"])
        messages = set()
        for record_type, mode in (("lab_report", READ), ("xray", WRITE)):
            with pytest.raises(AuthorizationError) as exc_info:
                app.enforcer.authorize(doctor.id, patient.id, record_type, mode)
            messages.add(exc_info.value.message)
        assert messages == {ACCESS_DENIED}

    def test_unknown_mode_is_denied(self, app, doctor, patient, grant):
        """An unrecognised mode is an ordinary denial."""
        grant(doctor, patient, ["all"], access_level=AccessLevel.READ_WRITE)

        assert app.enforcer.is_authorized(doctor.id, patient.id, "xray", "delete") is False
        with pytest.raises(AuthorizationError) as exc_info:
            app.enforcer.authorize(doctor.id, patient.id, "xray", "delete")
        assert exc_info.value.message == ACCESS_DENIED

    def test_patient_owns_their_records(self, app, patient):
        """Owners need no grant."""
        assert app.enforcer.authorize_caller(patient, patient.id, "xray", WRITE) is None

    def test_patient_cannot_reach_other_patient(self, app, patient, other_patient):
        """Patients only act on their own repository."""
        with pytest.raises(AuthorizationError):
            app.enforcer.authorize_caller(patient, other_patient.id, "xray", READ)

    def test_unverified_doctor(self, app, patient, grant):
        """Unverified doctors are refused even with a grant."""
        rookie = register_doctor(app, "doctor-7", verified=False)
        grant(rookie, patient, ["all"])
        with pytest.raises(AuthorizationError):
            app.enforcer.authorize_caller(rookie, patient.id, "xray", READ)
