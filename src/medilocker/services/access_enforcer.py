"""Access enforcement.

Answers one question: may this doctor perform this mode of access on this
patient's records of this type, right now? The grant is re-read and its
expiry re-checked on every call, so a revoked or lapsed grant stops working
immediately even before the sweep has run. Denials never say why.
"""

from typing import Optional, Union

from medilocker.core.exceptions import AuthorizationError
from medilocker.models.access_request import AccessMode, AccessRequest
from medilocker.models.record import RecordType
from medilocker.security.identity import Identity
from medilocker.services.access_grants import AccessGrantService
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)

ACCESS_DENIED = "Access denied."


class AccessEnforcer:
    """Checks callers against the access grant state machine."""

    def __init__(self, grants: AccessGrantService, clock: Clock = utcnow):
        """Initialize the enforcer."""
        self.grants = grants
        self.clock = clock

    def is_authorized(
        self,
        doctor_id: str,
        patient_id: str,
        record_type: Union[RecordType, str],
        mode: AccessMode,
    ) -> bool:
        """Check access without raising."""
        return self._matching_grant(doctor_id, patient_id, record_type, mode) is not None

    def authorize(
        self,
        doctor_id: str,
        patient_id: str,
        record_type: Union[RecordType, str],
        mode: AccessMode,
    ) -> AccessRequest:
        """Return the grant that allows the access.

        Raises:
            AuthorizationError: if no approved, unexpired grant covers it
        """
        grant = self._matching_grant(doctor_id, patient_id, record_type, mode)
        if grant is None:
            logger.info(
                "access_denied",
                doctor_id=doctor_id,
                patient_id=patient_id,
                record_type=_type_value(record_type),
                mode=_mode_value(mode),
            )
            raise AuthorizationError(ACCESS_DENIED)
        return grant

    def authorize_caller(
        self,
        identity: Identity,
        patient_id: str,
        record_type: Union[RecordType, str],
        mode: AccessMode,
    ) -> Optional[AccessRequest]:
        """Authorize an authenticated caller.

        Patients may act on their own records. Doctors must be verified and
        hold a covering grant.
        """
        if identity.is_patient:
            if identity.id != patient_id:
                raise AuthorizationError(ACCESS_DENIED)
            return None
        if not identity.verified:
            raise AuthorizationError(ACCESS_DENIED)
        return self.authorize(identity.id, patient_id, record_type, mode)

    def _matching_grant(
        self,
        doctor_id: str,
        patient_id: str,
        record_type: Union[RecordType, str],
        mode: AccessMode,
    ) -> Optional[AccessRequest]:
        now = self.clock()
        grant = self.grants.find_active_grant(doctor_id, patient_id, now)
        if grant is None:
            return None
        if not grant.is_active_at(now):
            return None
        try:
            mode = AccessMode(mode)
        except ValueError:
            return None
        if not grant.allows_mode(mode):
            return None
        if not grant.covers(_type_value(record_type)):
            return None
        return grant


def _type_value(record_type: Union[RecordType, str]) -> str:
    return record_type.value if isinstance(record_type, RecordType) else str(record_type)


def _mode_value(mode: Union[AccessMode, str]) -> str:
    return mode.value if isinstance(mode, AccessMode) else str(mode)
