"""Patient and doctor profiles, and doctor discovery."""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from medilocker.core.database import session_scope
from medilocker.core.exceptions import ConflictError, NotFoundError, ValidationError
from medilocker.models.profile import DoctorProfile, PatientProfile
from medilocker.schemas.base import parse_model
from medilocker.schemas.endorsements import DoctorRegistration, PatientRegistration
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)

MAX_PAGE_SIZE = 50

# Lower is better for response time; higher is better for the rest
SORT_FIELDS = {
    "total_cases_handled": False,
    "record_accuracy_score": False,
    "average_response_time_hours": True,
}


@dataclass
class DoctorPage:
    """One page of discovered doctors."""

    doctors: List[DoctorProfile]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        """Number of pages at this page size."""
        return -(-self.total // self.limit) if self.limit else 0


@dataclass
class DiscoveryFilters:
    """Values available for narrowing doctor discovery."""

    specializations: List[str] = field(default_factory=list)
    condition_tags: List[str] = field(default_factory=list)


class ProfileService:
    """Registers profiles and lists doctors by their contribution data."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = utcnow):
        """Initialize the service."""
        self.session_factory = session_factory
        self.clock = clock

    def register_patient(
        self, patient_id: str, payload: Union[PatientRegistration, Mapping[str, Any]]
    ) -> PatientProfile:
        """Create a patient profile for an authenticated identity."""
        data = parse_model(PatientRegistration, payload)
        now = self.clock()
        profile = PatientProfile(
            id=patient_id,
            display_name=data.display_name,
            total_records=0,
            total_versions=0,
            active_collaborators=0,
            created_at=now,
            updated_at=now,
        )
        with session_scope(self.session_factory) as session:
            session.add(profile)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("Patient is already registered.") from e
        logger.info("patient_registered", patient_id=patient_id)
        return profile

    def register_doctor(
        self, doctor_id: str, payload: Union[DoctorRegistration, Mapping[str, Any]]
    ) -> DoctorProfile:
        """Create an unverified doctor profile with zeroed statistics."""
        data = parse_model(DoctorRegistration, payload)
        now = self.clock()
        profile = DoctorProfile(
            id=doctor_id,
            display_name=data.display_name,
            specialization=data.specialization,
            license_number=data.license_number,
            is_verified=False,
            total_cases_handled=0,
            active_cases=0,
            total_records_added=0,
            total_records_updated=0,
            condition_tags=[],
            created_at=now,
            updated_at=now,
        )
        with session_scope(self.session_factory) as session:
            session.add(profile)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("Doctor is already registered.") from e
        logger.info("doctor_registered", doctor_id=doctor_id)
        return profile

    def set_doctor_verified(self, doctor_id: str, verified: bool = True) -> DoctorProfile:
        """Mark a doctor's license as verified or unverified."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(DoctorProfile)
                .where(DoctorProfile.id == doctor_id)
                .values(
                    is_verified=verified,
                    updated_at=self.clock(),
                    row_version=DoctorProfile.row_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NotFoundError("Doctor not found.")
        logger.info("doctor_verification_changed", doctor_id=doctor_id, verified=verified)
        return self.get_doctor(doctor_id)

    def get_patient(self, patient_id: str) -> PatientProfile:
        """Return a patient's profile."""
        with session_scope(self.session_factory) as session:
            profile = session.get(PatientProfile, patient_id)
            if profile is None:
                raise NotFoundError("Patient not found.")
            return profile

    def get_doctor(self, doctor_id: str) -> DoctorProfile:
        """Return a doctor's profile."""
        with session_scope(self.session_factory) as session:
            profile = session.get(DoctorProfile, doctor_id)
            if profile is None:
                raise NotFoundError("Doctor not found.")
            return profile

    def discover_doctors(
        self,
        specialization: Optional[str] = None,
        condition_tag: Optional[str] = None,
        min_cases: int = 0,
        sort_by: str = "total_cases_handled",
        page: int = 1,
        limit: int = 20,
    ) -> DoctorPage:
        """List verified doctors ranked by a contribution metric."""
        if sort_by not in SORT_FIELDS:
            raise ValidationError(
                f"sort_by must be one of: {', '.join(sorted(SORT_FIELDS))}"
            )
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        query = select(DoctorProfile).where(DoctorProfile.is_verified.is_(True))
        if specialization:
            query = query.where(DoctorProfile.specialization == specialization)
        if min_cases:
            query = query.where(DoctorProfile.total_cases_handled >= min_cases)

        with session_scope(self.session_factory) as session:
            doctors = list(session.scalars(query))

        # Condition tags are a JSON list; filter in Python for portability
        if condition_tag:
            doctors = [d for d in doctors if condition_tag in (d.condition_tags or [])]

        ascending = SORT_FIELDS[sort_by]
        missing = float("inf") if ascending else 0

        def sort_key(doctor: DoctorProfile) -> Any:
            value = getattr(doctor, sort_by)
            value = missing if value is None else value
            return value if ascending else -value

        doctors.sort(key=sort_key)
        offset = (page - 1) * limit
        return DoctorPage(
            doctors=doctors[offset : offset + limit],
            total=len(doctors),
            page=page,
            limit=limit,
        )

    def list_specializations(self) -> DiscoveryFilters:
        """Specializations and condition tags of verified doctors, sorted."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(DoctorProfile.specialization, DoctorProfile.condition_tags).where(
                    DoctorProfile.is_verified.is_(True)
                )
            ).all()
        specializations = {spec for spec, _ in rows if spec}
        tags = {tag for _, tag_list in rows for tag in (tag_list or [])}
        return DiscoveryFilters(
            specializations=sorted(specializations), condition_tags=sorted(tags)
        )
