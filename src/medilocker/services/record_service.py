"""Caller-facing record operations.

Wraps the record store with authentication-aware access checks, blob
storage, notifications, audit and contribution statistics. Unknown records
are reported as access denials so their existence never leaks.
"""

from typing import Any, List, Mapping, Optional, Tuple, Union

from medilocker.audit.audit_service import AuditAction, AuditEvent, AuditSink
from medilocker.config import Settings, get_settings
from medilocker.core.exceptions import AuthorizationError, NotFoundError, StateError
from medilocker.models.access_request import RECORD_TYPE_WILDCARD, AccessMode
from medilocker.models.record import Commit, Record, RecordType, RecordVersion
from medilocker.notifications.base import (
    NotificationMessage,
    NotificationSink,
    NotificationType,
)
from medilocker.schemas.base import parse_model
from medilocker.schemas.records import RecordMetadata, UploadedFile, VersionContent
from medilocker.security.identity import Identity
from medilocker.services.access_enforcer import ACCESS_DENIED, AccessEnforcer
from medilocker.services.contribution import ContributionAggregator
from medilocker.services.record_store import RecordStore
from medilocker.storage.base import BlobStore, build_storage_key
from medilocker.utils.id_generator import generate_id
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)


class RecordService:
    """Record operations on behalf of authenticated patients and doctors."""

    def __init__(
        self,
        store: RecordStore,
        enforcer: AccessEnforcer,
        blob_store: BlobStore,
        aggregator: ContributionAggregator,
        notifier: NotificationSink,
        audit: AuditSink,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the service with its collaborators."""
        self.store = store
        self.enforcer = enforcer
        self.blob_store = blob_store
        self.aggregator = aggregator
        self.notifier = notifier
        self.audit = audit
        self.settings = settings or get_settings()
        self.clock = clock

    def upload_record(
        self,
        identity: Identity,
        patient_id: str,
        metadata: Union[RecordMetadata, Mapping[str, Any]],
        upload: UploadedFile,
    ) -> Tuple[Record, RecordVersion]:
        """Create a record from an uploaded file.

        Patients upload to their own repository; doctors need a write grant
        covering the record type.
        """
        meta = parse_model(RecordMetadata, metadata)
        self.enforcer.authorize_caller(
            identity, patient_id, meta.record_type, AccessMode.WRITE
        )
        self.store.validate_commit_message(meta.commit_message)
        upload.validate(self.settings.max_upload_bytes)

        record_id = generate_id()
        version_id = generate_id()
        key = build_storage_key(patient_id, record_id, version_id, upload.extension)
        self.blob_store.put(key, upload.data, upload.media_type)

        record, version = self.store.create_record(
            patient_id,
            meta,
            VersionContent.from_upload(key, upload),
            author_id=identity.id,
            author_role=identity.role,
            record_id=record_id,
            version_id=version_id,
        )

        if identity.is_doctor:
            self.aggregator.on_version_committed(
                identity.id, is_update=False, condition_tags=record.tags
            )
            self._notify_patient(identity, record, version)
        self._audit(identity, AuditAction.RECORD_UPLOADED, record, version)
        return record, version

    def add_version(
        self,
        identity: Identity,
        record_id: str,
        commit_message: str,
        upload: UploadedFile,
        expected_version: Optional[int] = None,
    ) -> RecordVersion:
        """Commit a new version of an existing record."""
        record = self._authorized_record(identity, record_id, AccessMode.WRITE)
        if record.is_archived:
            raise StateError("Archived records cannot be changed.")
        message = self.store.validate_commit_message(commit_message)
        upload.validate(self.settings.max_upload_bytes)

        version_id = generate_id()
        key = build_storage_key(
            record.patient_id, record.id, version_id, upload.extension
        )
        self.blob_store.put(key, upload.data, upload.media_type)

        version = self.store.append_version(
            record.id,
            identity.id,
            identity.role,
            message,
            VersionContent.from_upload(key, upload),
            expected_version=expected_version,
            version_id=version_id,
        )

        if identity.is_doctor:
            self.aggregator.on_version_committed(
                identity.id, is_update=True, condition_tags=record.tags
            )
            self._notify_patient(identity, record, version)
        self._audit(identity, AuditAction.RECORD_VERSION_ADDED, record, version)
        return version

    def get_history(
        self, identity: Identity, record_id: str
    ) -> Tuple[Record, List[RecordVersion]]:
        """Return a record with its versions, newest first."""
        record = self._authorized_record(identity, record_id, AccessMode.READ)
        return record, self.store.list_versions(record.id)

    def get_download_handle(
        self, identity: Identity, record_id: str, version_number: Optional[int] = None
    ) -> str:
        """Return a temporary read handle for a version, the latest by default."""
        record = self._authorized_record(identity, record_id, AccessMode.READ)
        version = self.store.get_version(
            record.id,
            record.current_version if version_number is None else version_number,
        )
        handle = self.blob_store.get_temporary_read_handle(
            version.storage_key,
            self.settings.download_url_ttl_seconds,
            file_name=version.file_name,
        )
        self._audit(identity, AuditAction.RECORD_DOWNLOADED, record, version)
        return handle

    def list_patient_records(
        self,
        identity: Identity,
        patient_id: str,
        record_type: Optional[Union[RecordType, str]] = None,
    ) -> List[Record]:
        """List a patient's records.

        Listing one type needs a grant covering that type; the whole history
        needs a grant over every type.
        """
        if record_type is not None:
            record_type = RecordType(record_type)
            self.enforcer.authorize_caller(
                identity, patient_id, record_type, AccessMode.READ
            )
            return self.store.list_patient_records(patient_id, record_type)

        self.enforcer.authorize_caller(
            identity, patient_id, RECORD_TYPE_WILDCARD, AccessMode.READ
        )
        return self.store.list_patient_records(patient_id)

    def get_commit_log(
        self, identity: Identity, patient_id: str, limit: Optional[int] = None
    ) -> List[Commit]:
        """Return the patient's commits, newest first; doctors need a grant over every type."""
        self.enforcer.authorize_caller(
            identity, patient_id, RECORD_TYPE_WILDCARD, AccessMode.READ
        )
        return self.store.get_patient_commit_log(patient_id, limit)

    def archive_record(self, identity: Identity, record_id: str) -> Record:
        """Hide a record from listings; only its owner may do this."""
        try:
            record = self.store.get_record(record_id)
        except NotFoundError as e:
            raise AuthorizationError(ACCESS_DENIED) from e
        if not identity.is_patient or identity.id != record.patient_id:
            raise AuthorizationError(ACCESS_DENIED)
        record = self.store.set_archived(record.id, True)
        self._audit(identity, AuditAction.RECORD_ARCHIVED, record, None)
        return record

    def _authorized_record(
        self, identity: Identity, record_id: str, mode: AccessMode
    ) -> Record:
        try:
            record = self.store.get_record(record_id)
        except NotFoundError as e:
            raise AuthorizationError(ACCESS_DENIED) from e
        self.enforcer.authorize_caller(
            identity, record.patient_id, record.record_type, mode
        )
        return record

    def _notify_patient(
        self, identity: Identity, record: Record, version: RecordVersion
    ) -> None:
        doctor_name = identity.display_name or "Your doctor"
        self.notifier.send(
            NotificationMessage(
                recipient_id=record.patient_id,
                notification_type=NotificationType.RECORD_UPDATED,
                title="Record updated",
                body=f'{doctor_name} committed version {version.version_number} of "{record.title}".',
                metadata={
                    "record_id": record.id,
                    "version_id": version.id,
                    "version_number": version.version_number,
                },
            )
        )

    def _audit(
        self,
        identity: Identity,
        action: AuditAction,
        record: Record,
        version: Optional[RecordVersion],
    ) -> None:
        details = {"patient_id": record.patient_id, "record_type": record.record_type.value}
        if version is not None:
            details["version_number"] = version.version_number
        self.audit.record(
            AuditEvent(
                actor_id=identity.id,
                actor_role=identity.role.value,
                action=action,
                resource_id=record.id,
                details=details,
                occurred_at=self.clock(),
            )
        )
