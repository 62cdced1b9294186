"""Access grant state machine.

A doctor's access to a patient's records is an ``AccessRequest`` moving
through ``pending -> approved | denied`` and ``approved -> revoked |
expired``. Every transition is a conditional ``UPDATE ... WHERE status =
<expected>`` so concurrent responders, revokers and sweeps apply it once.
Side effects on other components (contribution statistics, notifications,
audit) run after the transition has committed and never undo it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Sequence, Union

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from medilocker.audit.audit_service import AuditAction, AuditEvent, AuditSink
from medilocker.config import Settings, get_settings
from medilocker.core.database import session_scope
from medilocker.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from medilocker.models.access_request import AccessLevel, AccessRequest, AccessStatus
from medilocker.models.profile import DoctorProfile, PatientProfile, UserRole
from medilocker.notifications.base import (
    NotificationMessage,
    NotificationSink,
    NotificationType,
)
from medilocker.schemas.access_requests import AccessRequestCreate, AccessResponse
from medilocker.schemas.base import parse_model
from medilocker.security.identity import Identity
from medilocker.services.contribution import ContributionAggregator
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, hours_between, utcnow

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class Collaborator:
    """A doctor currently holding an approved grant."""

    request: AccessRequest
    doctor: Optional[DoctorProfile]


class AccessGrantService:
    """Creates and transitions access requests."""

    def __init__(
        self,
        session_factory: sessionmaker,
        aggregator: ContributionAggregator,
        notifier: NotificationSink,
        audit: AuditSink,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the service with its collaborators."""
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.notifier = notifier
        self.audit = audit
        self.settings = settings or get_settings()
        self.clock = clock

    def create(
        self,
        doctor_id: str,
        patient_id: str,
        reason: str,
        access_level: Union[AccessLevel, str] = AccessLevel.READ,
        record_types: Sequence[str] = (),
        expiry_days: Optional[int] = None,
    ) -> AccessRequest:
        """Open a pending request for a (doctor, patient) pair.

        Raises:
            ValidationError: if the request is malformed
            NotFoundError: if the patient is not registered
            ConflictError: if the pair already has a pending or approved request
        """
        payload = parse_model(
            AccessRequestCreate,
            {
                "patient_id": patient_id,
                "reason": reason,
                "access_level": access_level,
                "record_types": [getattr(entry, "value", entry) for entry in record_types],
                "expiry_days": expiry_days or self.settings.default_expiry_days,
            },
        )
        if payload.expiry_days > self.settings.max_expiry_days:
            raise ValidationError(
                f"expiry_days must be at most {self.settings.max_expiry_days}."
            )
        now = self.clock()

        with session_scope(self.session_factory) as session:
            if session.get(PatientProfile, patient_id) is None:
                raise NotFoundError("Patient not found.")
            if self._open_request(session, doctor_id, patient_id) is not None:
                raise ConflictError(
                    "You already have a pending or active access request for this patient."
                )

            request = AccessRequest(
                doctor_id=doctor_id,
                patient_id=patient_id,
                reason=payload.reason,
                access_level=payload.access_level,
                record_types=list(payload.record_types),
                expiry_days=payload.expiry_days,
                status=AccessStatus.PENDING,
                is_expired=False,
                requested_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(request)
            try:
                session.flush()
            except IntegrityError as e:
                # Lost the race to a concurrent request for the same pair
                raise ConflictError(
                    "You already have a pending or active access request for this patient."
                ) from e

        logger.info(
            "access_request_created",
            request_id=request.id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            access_level=payload.access_level.value,
        )
        return request

    def request_access(
        self, identity: Identity, payload: Union[AccessRequestCreate, Mapping[str, Any]]
    ) -> AccessRequest:
        """Caller-facing ``create`` for verified doctors."""
        if not identity.is_doctor:
            raise AuthorizationError("Only doctors can request access.")
        if not identity.verified:
            raise AuthorizationError("Only verified doctors can request access.")
        data = parse_model(AccessRequestCreate, payload)

        request = self.create(
            doctor_id=identity.id,
            patient_id=data.patient_id,
            reason=data.reason,
            access_level=data.access_level,
            record_types=data.record_types,
            expiry_days=data.expiry_days,
        )

        doctor_name = identity.display_name or "A doctor"
        self.notifier.send(
            NotificationMessage(
                recipient_id=request.patient_id,
                notification_type=NotificationType.ACCESS_REQUEST,
                title="New access request",
                body=f"{doctor_name} is requesting access to your records.",
                metadata={"request_id": request.id, "doctor_id": identity.id},
            )
        )
        self.audit.record(
            AuditEvent(
                actor_id=identity.id,
                actor_role=identity.role.value,
                action=AuditAction.ACCESS_REQUEST_CREATED,
                resource_id=request.id,
                details={
                    "patient_id": request.patient_id,
                    "access_level": request.access_level.value,
                    "record_types": list(request.record_types),
                },
                occurred_at=self.clock(),
            )
        )
        return request

    def respond(
        self,
        request_id: str,
        responder_id: str,
        approve: bool,
        note: Optional[str] = None,
    ) -> AccessRequest:
        """Approve or deny a pending request.

        Raises:
            NotFoundError: if the request does not exist
            AuthorizationError: if the responder is not the request's patient
            StateError: if the request is no longer pending
        """
        response = parse_model(AccessResponse, {"approved": approve, "note": note})
        now = self.clock()

        with session_scope(self.session_factory) as session:
            request = self._load_request(session, request_id)
            if request.patient_id != responder_id:
                raise AuthorizationError(
                    "Not authorized to respond to this request."
                )
            if request.status != AccessStatus.PENDING:
                raise StateError(f"Request is already {request.status.value}.")

            values = {
                "responded_at": now,
                "note": response.note,
                "updated_at": now,
            }
            if response.approved:
                values["status"] = AccessStatus.APPROVED
                values["expires_at"] = now + timedelta(days=request.expiry_days)
            else:
                values["status"] = AccessStatus.DENIED
            self._transition(session, request_id, AccessStatus.PENDING, values)

            if response.approved:
                session.execute(
                    update(PatientProfile)
                    .where(PatientProfile.id == request.patient_id)
                    .values(
                        active_collaborators=PatientProfile.active_collaborators + 1
                    )
                    .execution_options(synchronize_session=False)
                )
            session.refresh(request)

        logger.info(
            "access_request_responded",
            request_id=request_id,
            status=request.status.value,
            doctor_id=request.doctor_id,
        )

        if response.approved:
            self.aggregator.record_case_approval(
                request.doctor_id, hours_between(request.requested_at, now)
            )
            body = "Your access request was approved."
            action = AuditAction.ACCESS_REQUEST_APPROVED
        else:
            body = "Your access request was denied."
            action = AuditAction.ACCESS_REQUEST_DENIED
        if response.note:
            body = f"{body} Note: {response.note}"

        self.notifier.send(
            NotificationMessage(
                recipient_id=request.doctor_id,
                notification_type=NotificationType.ACCESS_REQUEST_RESPONSE,
                title="Access request update",
                body=body,
                metadata={"request_id": request_id, "status": request.status.value},
            )
        )
        self.audit.record(
            AuditEvent(
                actor_id=responder_id,
                actor_role=UserRole.PATIENT.value,
                action=action,
                resource_id=request_id,
                details={"doctor_id": request.doctor_id},
                occurred_at=now,
            )
        )
        return request

    def revoke(self, request_id: str, patient_id: str) -> AccessRequest:
        """Withdraw an approved grant immediately.

        Raises:
            NotFoundError: if the request does not exist
            AuthorizationError: if the caller is not the request's patient
            StateError: if the request is not approved
        """
        now = self.clock()
        with session_scope(self.session_factory) as session:
            request = self._load_request(session, request_id)
            if request.patient_id != patient_id:
                raise AuthorizationError("Not authorized to revoke this request.")
            if request.status != AccessStatus.APPROVED:
                raise StateError("Only approved requests can be revoked.")

            self._transition(
                session,
                request_id,
                AccessStatus.APPROVED,
                {
                    "status": AccessStatus.REVOKED,
                    "is_expired": True,
                    "revoked_at": now,
                    "updated_at": now,
                },
            )
            self._release_collaborator(session, patient_id)
            session.refresh(request)

        logger.info(
            "access_revoked", request_id=request_id, doctor_id=request.doctor_id
        )
        self.aggregator.on_case_completed(request.doctor_id)
        self.notifier.send(
            NotificationMessage(
                recipient_id=request.doctor_id,
                notification_type=NotificationType.ACCESS_REVOKED,
                title="Access revoked",
                body="A patient has revoked your access to their records.",
                metadata={"request_id": request_id},
            )
        )
        self.audit.record(
            AuditEvent(
                actor_id=patient_id,
                actor_role=UserRole.PATIENT.value,
                action=AuditAction.ACCESS_REVOKED,
                resource_id=request_id,
                details={"doctor_id": request.doctor_id},
                occurred_at=now,
            )
        )
        return request

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Expire every approved grant whose window has elapsed.

        Safe to run concurrently and repeatedly: a grant is expired once.

        Returns:
            Number of grants this sweep expired
        """
        now = now or self.clock()
        expired: List[AccessRequest] = []

        with session_scope(self.session_factory) as session:
            candidates = list(
                session.scalars(
                    select(AccessRequest).where(
                        AccessRequest.status == AccessStatus.APPROVED,
                        AccessRequest.expires_at <= now,
                    )
                )
            )
            for request in candidates:
                result = session.execute(
                    update(AccessRequest)
                    .where(
                        AccessRequest.id == request.id,
                        AccessRequest.status == AccessStatus.APPROVED,
                    )
                    .values(
                        status=AccessStatus.EXPIRED, is_expired=True, updated_at=now
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    self._release_collaborator(session, request.patient_id)
                    expired.append(request)

        for request in expired:
            self.aggregator.on_case_completed(request.doctor_id)
            self.notifier.send(
                NotificationMessage(
                    recipient_id=request.doctor_id,
                    notification_type=NotificationType.ACCESS_EXPIRED,
                    title="Access expired",
                    body="Your access to a patient's records has expired.",
                    metadata={"request_id": request.id},
                )
            )
            self.audit.record(
                AuditEvent(
                    actor_id=SYSTEM_ACTOR,
                    actor_role=SYSTEM_ACTOR,
                    action=AuditAction.ACCESS_EXPIRED,
                    resource_id=request.id,
                    details={
                        "doctor_id": request.doctor_id,
                        "patient_id": request.patient_id,
                    },
                    occurred_at=now,
                )
            )

        if expired:
            logger.info("access_grants_expired", count=len(expired))
        return len(expired)

    # Queries

    def get_request(self, request_id: str) -> AccessRequest:
        """Return one access request."""
        with session_scope(self.session_factory) as session:
            return self._load_request(session, request_id)

    def find_active_grant(
        self, doctor_id: str, patient_id: str, now: Optional[datetime] = None
    ) -> Optional[AccessRequest]:
        """Return the pair's approved, unexpired grant if there is one."""
        now = now or self.clock()
        with session_scope(self.session_factory) as session:
            return session.scalars(
                select(AccessRequest).where(
                    AccessRequest.doctor_id == doctor_id,
                    AccessRequest.patient_id == patient_id,
                    AccessRequest.status == AccessStatus.APPROVED,
                    AccessRequest.is_expired.is_(False),
                    AccessRequest.expires_at > now,
                )
            ).first()

    def list_incoming(
        self,
        patient_id: str,
        status: Optional[AccessStatus] = None,
        limit: Optional[int] = None,
    ) -> List[AccessRequest]:
        """Requests addressed to a patient, newest first."""
        query = select(AccessRequest).where(AccessRequest.patient_id == patient_id)
        if status is not None:
            query = query.where(AccessRequest.status == AccessStatus(status))
        return self._list(query, limit)

    def list_outgoing(
        self,
        doctor_id: str,
        status: Optional[AccessStatus] = None,
        limit: Optional[int] = None,
    ) -> List[AccessRequest]:
        """Requests made by a doctor, newest first."""
        query = select(AccessRequest).where(AccessRequest.doctor_id == doctor_id)
        if status is not None:
            query = query.where(AccessRequest.status == AccessStatus(status))
        return self._list(query, limit)

    def list_collaborators(self, patient_id: str) -> List[Collaborator]:
        """Doctors with an approved, unexpired grant on a patient."""
        now = self.clock()
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(AccessRequest, DoctorProfile)
                .outerjoin(DoctorProfile, DoctorProfile.id == AccessRequest.doctor_id)
                .where(
                    AccessRequest.patient_id == patient_id,
                    AccessRequest.status == AccessStatus.APPROVED,
                    AccessRequest.is_expired.is_(False),
                    AccessRequest.expires_at > now,
                )
                .order_by(AccessRequest.responded_at.desc())
            ).all()
        return [Collaborator(request=request, doctor=doctor) for request, doctor in rows]

    # Internals

    def _list(self, query: Any, limit: Optional[int]) -> List[AccessRequest]:
        limit = min(limit or self.settings.request_list_limit, self.settings.request_list_limit)
        query = query.order_by(
            AccessRequest.requested_at.desc(), AccessRequest.id
        ).limit(limit)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(query))

    @staticmethod
    def _load_request(session: Session, request_id: str) -> AccessRequest:
        request = session.get(AccessRequest, request_id)
        if request is None:
            raise NotFoundError("Access request not found.")
        return request

    @staticmethod
    def _open_request(
        session: Session, doctor_id: str, patient_id: str
    ) -> Optional[AccessRequest]:
        return session.scalars(
            select(AccessRequest).where(
                AccessRequest.doctor_id == doctor_id,
                AccessRequest.patient_id == patient_id,
                AccessRequest.status.in_(
                    [AccessStatus.PENDING, AccessStatus.APPROVED]
                ),
            )
        ).first()

    @staticmethod
    def _transition(
        session: Session,
        request_id: str,
        expected: AccessStatus,
        values: Mapping[str, Any],
    ) -> None:
        """Apply a transition only if the request is still in ``expected``."""
        result = session.execute(
            update(AccessRequest)
            .where(AccessRequest.id == request_id, AccessRequest.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateError(f"Request is no longer {expected.value}.")

    @staticmethod
    def _release_collaborator(session: Session, patient_id: str) -> None:
        session.execute(
            update(PatientProfile)
            .where(PatientProfile.id == patient_id)
            .values(
                active_collaborators=case(
                    (
                        PatientProfile.active_collaborators > 0,
                        PatientProfile.active_collaborators - 1,
                    ),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
