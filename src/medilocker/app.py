"""Application container.

``create_app`` wires the database, collaborators and services from settings
into one ``Medilocker`` object. Transport layers and background jobs build
it once and call the services on it.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import sessionmaker

from medilocker.audit.audit_service import AuditSink, DatabaseAuditTrail
from medilocker.config import Settings, get_settings
from medilocker.core.database import build_engine, build_session_factory, init_db
from medilocker.notifications.base import NotificationSink
from medilocker.notifications.service import DatabaseNotificationSink
from medilocker.security.identity import IdentityProvider, JWTIdentityProvider
from medilocker.services.access_enforcer import AccessEnforcer
from medilocker.services.access_grants import AccessGrantService
from medilocker.services.contribution import ContributionAggregator
from medilocker.services.endorsement_service import EndorsementService
from medilocker.services.profile_service import ProfileService
from medilocker.services.record_service import RecordService
from medilocker.services.record_store import RecordStore
from medilocker.storage import build_blob_store
from medilocker.storage.base import BlobStore
from medilocker.utils.logging import get_logger, setup_logging
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)


@dataclass
class Medilocker:
    """Every wired component of a running application."""

    settings: Settings
    session_factory: sessionmaker
    identity: IdentityProvider
    blob_store: BlobStore
    notifier: NotificationSink
    audit: AuditSink
    aggregator: ContributionAggregator
    records: RecordStore
    grants: AccessGrantService
    enforcer: AccessEnforcer
    record_service: RecordService
    profiles: ProfileService
    endorsements: EndorsementService


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    blob_store: Optional[BlobStore] = None,
    clock: Optional[Clock] = None,
    create_tables: bool = True,
) -> Medilocker:
    """Build the application from settings, with optional overrides."""
    settings = settings or get_settings()
    clock = clock or utcnow

    if session_factory is None:
        engine = build_engine(settings)
        if create_tables:
            init_db(engine)
        session_factory = build_session_factory(engine)

    blob_store = blob_store or build_blob_store(settings, clock=clock)
    identity = JWTIdentityProvider(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        issuer=settings.token_issuer,
        clock=clock,
    )
    notifier = DatabaseNotificationSink(session_factory, clock=clock)
    audit = DatabaseAuditTrail(session_factory)
    aggregator = ContributionAggregator(session_factory, settings=settings, clock=clock)
    records = RecordStore(session_factory, settings=settings, clock=clock)
    grants = AccessGrantService(
        session_factory,
        aggregator=aggregator,
        notifier=notifier,
        audit=audit,
        settings=settings,
        clock=clock,
    )
    enforcer = AccessEnforcer(grants, clock=clock)
    record_service = RecordService(
        store=records,
        enforcer=enforcer,
        blob_store=blob_store,
        aggregator=aggregator,
        notifier=notifier,
        audit=audit,
        settings=settings,
        clock=clock,
    )

    logger.info(
        "application_created",
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )
    return Medilocker(
        settings=settings,
        session_factory=session_factory,
        identity=identity,
        blob_store=blob_store,
        notifier=notifier,
        audit=audit,
        aggregator=aggregator,
        records=records,
        grants=grants,
        enforcer=enforcer,
        record_service=record_service,
        profiles=ProfileService(session_factory, clock=clock),
        endorsements=EndorsementService(
            session_factory, aggregator=aggregator, audit=audit, clock=clock
        ),
    )


@lru_cache()
def get_app() -> Medilocker:
    """Get the process-wide application, configuring logging on first use."""
    settings = get_settings()
    setup_logging(settings)
    return create_app(settings)
