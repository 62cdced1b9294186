"""Peer endorsements between verified doctors."""

from typing import Any, List, Mapping, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from medilocker.audit.audit_service import AuditAction, AuditEvent, AuditSink
from medilocker.core.database import session_scope
from medilocker.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from medilocker.models.profile import DoctorProfile, Endorsement
from medilocker.schemas.base import parse_model
from medilocker.schemas.endorsements import EndorsementCreate
from medilocker.security.identity import Identity
from medilocker.services.contribution import ContributionAggregator
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)

DUPLICATE_MESSAGE = "You have already endorsed this doctor for this skill."


class EndorsementService:
    """Lets verified doctors vouch for each other's skills."""

    def __init__(
        self,
        session_factory: sessionmaker,
        aggregator: ContributionAggregator,
        audit: AuditSink,
        clock: Clock = utcnow,
    ):
        """Initialize the service."""
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.audit = audit
        self.clock = clock

    def endorse(
        self,
        identity: Identity,
        target_doctor_id: str,
        payload: Union[EndorsementCreate, Mapping[str, Any]],
    ) -> Endorsement:
        """Endorse a peer for one skill, once.

        Raises:
            AuthorizationError: if the caller is not a verified doctor
            ValidationError: on self-endorsement or an unverified target
            NotFoundError: if the target doctor does not exist
            ConflictError: if the caller already endorsed this skill
        """
        if not identity.is_doctor or not identity.verified:
            raise AuthorizationError("Only verified doctors can endorse peers.")
        data = parse_model(EndorsementCreate, payload)
        if identity.id == target_doctor_id:
            raise ValidationError("You cannot endorse yourself.")

        now = self.clock()
        with session_scope(self.session_factory) as session:
            target = session.get(DoctorProfile, target_doctor_id)
            if target is None:
                raise NotFoundError("Doctor not found.")
            if not target.is_verified:
                raise ValidationError("Can only endorse verified doctors.")

            existing = session.scalars(
                select(Endorsement).where(
                    Endorsement.endorser_id == identity.id,
                    Endorsement.target_doctor_id == target_doctor_id,
                    Endorsement.skill == data.skill,
                )
            ).first()
            if existing is not None:
                raise ConflictError(DUPLICATE_MESSAGE)

            endorsement = Endorsement(
                endorser_id=identity.id,
                target_doctor_id=target_doctor_id,
                skill=data.skill,
                note=data.note,
                created_at=now,
                updated_at=now,
            )
            session.add(endorsement)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError(DUPLICATE_MESSAGE) from e

        logger.info(
            "doctor_endorsed",
            endorser_id=identity.id,
            target_doctor_id=target_doctor_id,
            skill=data.skill,
        )
        self.aggregator.on_endorsement_added(target_doctor_id, data.skill)
        self.audit.record(
            AuditEvent(
                actor_id=identity.id,
                actor_role=identity.role.value,
                action=AuditAction.DOCTOR_ENDORSED,
                resource_id=target_doctor_id,
                details={"skill": data.skill},
                occurred_at=now,
            )
        )
        return endorsement

    def list_endorsements(self, doctor_id: str) -> List[Endorsement]:
        """Endorsements a doctor has received, newest first."""
        with session_scope(self.session_factory) as session:
            return list(
                session.scalars(
                    select(Endorsement)
                    .where(Endorsement.target_doctor_id == doctor_id)
                    .order_by(Endorsement.created_at.desc(), Endorsement.id)
                )
            )
