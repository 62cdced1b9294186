"""Record store.

Owns the Record / Version / Commit model. Every write is one unit of work:
the version row, its commit projection, the record's head pointer and the
patient's counters change together or not at all. Version numbers are
assigned by compare-and-set on ``records.current_version``; the unique
``(record_id, version_number)`` constraint backs it up.

The store performs no access checks; callers authorize first.
"""

from typing import Any, List, Mapping, Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from medilocker.config import Settings, get_settings
from medilocker.core.database import session_scope
from medilocker.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from medilocker.models.profile import PatientProfile, UserRole
from medilocker.models.record import (
    ChangeType,
    Commit,
    Record,
    RecordType,
    RecordVersion,
)
from medilocker.schemas.base import parse_model
from medilocker.schemas.records import RecordMetadata, VersionContent
from medilocker.utils.id_generator import generate_id
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)


class VersionConflictError(ConflictError):
    """Another writer advanced the record between read and write."""


class RecordStore:
    """Versioned storage of patients' records."""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the record store."""
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.clock = clock

    def validate_commit_message(self, message: Optional[str]) -> str:
        """Return the trimmed commit message or raise ``ValidationError``."""
        message = (message or "").strip()
        minimum = self.settings.min_commit_message_length
        maximum = self.settings.max_commit_message_length
        if len(message) < minimum:
            raise ValidationError(
                f"Commit message must be at least {minimum} characters."
            )
        if len(message) > maximum:
            raise ValidationError(
                f"Commit message must be at most {maximum} characters."
            )
        return message

    def create_record(
        self,
        patient_id: str,
        metadata: Union[RecordMetadata, Mapping[str, Any]],
        content: VersionContent,
        author_id: Optional[str] = None,
        author_role: UserRole = UserRole.PATIENT,
        record_id: Optional[str] = None,
        version_id: Optional[str] = None,
    ) -> Tuple[Record, RecordVersion]:
        """Create a record with its first version.

        Args:
            patient_id: Owner of the new record
            metadata: Title, type, commit message and descriptive fields
            content: Where the version's bytes were stored
            author_id: Who uploaded it, defaults to the patient
            author_role: Role of the author
            record_id: Pre-allocated record id, e.g. used in the storage key
            version_id: Pre-allocated version id

        Raises:
            ValidationError: if the metadata is incomplete
            NotFoundError: if the patient is not registered
        """
        meta = parse_model(RecordMetadata, metadata)
        message = self.validate_commit_message(meta.commit_message)
        author_id = author_id or patient_id
        record_id = record_id or generate_id()
        version_id = version_id or generate_id()
        now = self.clock()

        with session_scope(self.session_factory) as session:
            if session.get(PatientProfile, patient_id) is None:
                raise NotFoundError("Patient not found.")

            record = Record(
                id=record_id,
                patient_id=patient_id,
                title=meta.title,
                record_type=meta.record_type,
                description=meta.description,
                tags=list(meta.tags),
                issued_by=meta.issued_by,
                issued_date=meta.issued_date,
                current_version=1,
                current_version_id=version_id,
                total_versions=1,
                is_archived=False,
                created_by=author_id,
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            try:
                session.flush()
                version = self._add_version_rows(
                    session,
                    record,
                    version_id=version_id,
                    version_number=1,
                    author_id=author_id,
                    author_role=author_role,
                    message=message,
                    change_type=ChangeType.INITIAL_UPLOAD,
                    content=content,
                    now=now,
                )
            except IntegrityError as e:
                raise ConflictError("Record already exists.") from e

            self._bump_patient(session, patient_id, records=1, versions=1)

        logger.info(
            "record_created",
            record_id=record_id,
            patient_id=patient_id,
            record_type=meta.record_type.value,
            author_id=author_id,
        )
        return record, version

    def append_version(
        self,
        record_id: str,
        author_id: str,
        author_role: UserRole,
        message: str,
        content: VersionContent,
        expected_version: Optional[int] = None,
        version_id: Optional[str] = None,
    ) -> RecordVersion:
        """Append a new version to a record.

        When ``expected_version`` is given the append only succeeds if the
        record is still at that version. Otherwise a writer that loses a race
        re-reads the record and retries a bounded number of times.

        Raises:
            NotFoundError: if the record does not exist
            ValidationError: if the commit message is too short or too long
            ConflictError: if the expected version is stale or every retry
                lost a race
        """
        message = self.validate_commit_message(message)
        version_id = version_id or generate_id()

        def attempt_append() -> RecordVersion:
            return self._append_once(
                record_id,
                author_id,
                author_role,
                message,
                content,
                expected_version,
                version_id,
            )

        if expected_version is not None:
            return attempt_append()

        retrying = Retrying(
            stop=stop_after_attempt(self.settings.version_append_attempts),
            wait=wait_random(min=0, max=0.05),
            retry=retry_if_exception_type(VersionConflictError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    version = attempt_append()
        except VersionConflictError:
            logger.warning(
                "version_append_conflict",
                record_id=record_id,
                attempts=self.settings.version_append_attempts,
            )
            raise
        return version

    def _append_once(
        self,
        record_id: str,
        author_id: str,
        author_role: UserRole,
        message: str,
        content: VersionContent,
        expected_version: Optional[int],
        version_id: str,
    ) -> RecordVersion:
        now = self.clock()
        with session_scope(self.session_factory) as session:
            record = session.get(Record, record_id)
            if record is None:
                raise NotFoundError("Record not found.")

            base = record.current_version
            if expected_version is not None and base != expected_version:
                raise ConflictError(
                    f"Record is at version {base}, not {expected_version}."
                )
            next_number = base + 1

            # Compare-and-set: only one writer can move the head off ``base``
            result = session.execute(
                update(Record)
                .where(Record.id == record_id, Record.current_version == base)
                .values(
                    current_version=next_number,
                    current_version_id=version_id,
                    total_versions=Record.total_versions + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise VersionConflictError(
                    f"Record {record_id} moved past version {base}."
                )

            try:
                version = self._add_version_rows(
                    session,
                    record,
                    version_id=version_id,
                    version_number=next_number,
                    author_id=author_id,
                    author_role=author_role,
                    message=message,
                    change_type=ChangeType.UPDATE,
                    content=content,
                    now=now,
                )
            except IntegrityError as e:
                raise VersionConflictError(
                    f"Version {next_number} of {record_id} already exists."
                ) from e

            self._bump_patient(session, record.patient_id, versions=1)

        logger.info(
            "version_appended",
            record_id=record_id,
            version_number=next_number,
            author_id=author_id,
            author_role=author_role.value,
        )
        return version

    def get_record(self, record_id: str) -> Record:
        """Return a record.

        Raises:
            NotFoundError: if the record does not exist
        """
        with session_scope(self.session_factory) as session:
            record = session.get(Record, record_id)
            if record is None:
                raise NotFoundError("Record not found.")
            return record

    def list_versions(self, record_id: str) -> List[RecordVersion]:
        """Return a record's versions, newest first."""
        with session_scope(self.session_factory) as session:
            if session.get(Record, record_id) is None:
                raise NotFoundError("Record not found.")
            return list(
                session.scalars(
                    select(RecordVersion)
                    .where(RecordVersion.record_id == record_id)
                    .order_by(RecordVersion.version_number.desc())
                )
            )

    def get_version(self, record_id: str, version_number: int) -> RecordVersion:
        """Return one version of a record."""
        with session_scope(self.session_factory) as session:
            version = session.scalars(
                select(RecordVersion).where(
                    RecordVersion.record_id == record_id,
                    RecordVersion.version_number == version_number,
                )
            ).first()
            if version is None:
                raise NotFoundError("Version not found.")
            return version

    def list_patient_records(
        self,
        patient_id: str,
        record_type: Optional[RecordType] = None,
        include_archived: bool = False,
    ) -> List[Record]:
        """Return a patient's records, most recently updated first."""
        query = select(Record).where(Record.patient_id == patient_id)
        if record_type is not None:
            query = query.where(Record.record_type == RecordType(record_type))
        if not include_archived:
            query = query.where(Record.is_archived.is_(False))
        query = query.order_by(Record.updated_at.desc(), Record.id)
        with session_scope(self.session_factory) as session:
            return list(session.scalars(query))

    def get_patient_commit_log(
        self, patient_id: str, limit: Optional[int] = None
    ) -> List[Commit]:
        """Return a patient's commits across all records, newest first."""
        limit = limit or self.settings.commit_log_default_limit
        limit = max(1, min(limit, self.settings.commit_log_max_limit))
        with session_scope(self.session_factory) as session:
            return list(
                session.scalars(
                    select(Commit)
                    .where(Commit.patient_id == patient_id)
                    .order_by(Commit.committed_at.desc(), Commit.version_number.desc())
                    .limit(limit)
                )
            )

    def set_archived(self, record_id: str, archived: bool = True) -> Record:
        """Archive or restore a record; its history is untouched."""
        with session_scope(self.session_factory) as session:
            record = session.get(Record, record_id)
            if record is None:
                raise NotFoundError("Record not found.")
            record.is_archived = archived
            record.updated_at = self.clock()
        logger.info("record_archived", record_id=record_id, archived=archived)
        return record

    @staticmethod
    def _add_version_rows(
        session: Session,
        record: Record,
        version_id: str,
        version_number: int,
        author_id: str,
        author_role: UserRole,
        message: str,
        change_type: ChangeType,
        content: VersionContent,
        now: Any,
    ) -> RecordVersion:
        """Write a version and then its commit projection."""
        version = RecordVersion(
            id=version_id,
            record_id=record.id,
            patient_id=record.patient_id,
            version_number=version_number,
            commit_message=message,
            author_id=author_id,
            author_role=author_role,
            change_type=change_type,
            storage_key=content.storage_key,
            file_name=content.file_name,
            file_size=content.file_size,
            mime_type=content.mime_type,
            checksum=content.checksum,
            created_at=now,
            updated_at=now,
        )
        session.add(version)
        session.flush()
        session.add(
            Commit(
                record_id=record.id,
                version_id=version_id,
                patient_id=record.patient_id,
                version_number=version_number,
                author_id=author_id,
                author_role=author_role,
                commit_message=message,
                change_type=change_type,
                record_type=record.record_type,
                committed_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        session.flush()
        return version

    @staticmethod
    def _bump_patient(
        session: Session, patient_id: str, records: int = 0, versions: int = 0
    ) -> None:
        session.execute(
            update(PatientProfile)
            .where(PatientProfile.id == patient_id)
            .values(
                total_records=PatientProfile.total_records + records,
                total_versions=PatientProfile.total_versions + versions,
            )
            .execution_options(synchronize_session=False)
        )
