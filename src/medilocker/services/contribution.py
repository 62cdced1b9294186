"""Contribution statistics.

The aggregator is the only writer of a doctor's reputation signals. It is
driven by events from the record store and the access grant state machine.
Each handler is one unit of work against one doctor; pure counter deltas are
SQL-level increments, while the rolling average, the accuracy score and the
condition-tag union are read-modify-write guarded by the profile's row
version and retried when a concurrent writer got there first.

Handler failures are logged and swallowed: statistics lag behind rather
than failing the operation that triggered them.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import case, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from medilocker.config import Settings, get_settings
from medilocker.core.database import session_scope
from medilocker.core.exceptions import ConfigurationError, MedilockerError, NotFoundError
from medilocker.models.profile import ActivityDay, DoctorProfile, SkillEndorsementCount
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, day_key, utcnow

logger = get_logger(__name__)


def round_half_up(value: float, places: int = 2) -> float:
    """Round half away from zero, unlike the built-in banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def rolling_average(previous: Optional[float], cases: int, hours: float) -> float:
    """Fold one response time into the running average over ``cases`` cases.

    The first recorded response time becomes the average outright.
    """
    if previous is None:
        return round_half_up(hours)
    cases = max(1, cases)
    return round_half_up((previous * (cases - 1) + hours) / cases)


def accuracy_score(total_endorsements: int, total_cases: int) -> Optional[int]:
    """Score endorsements per case on a 50..100 scale; unset without cases."""
    if total_cases <= 0:
        return None
    raw = total_endorsements / total_cases * 50 + 50
    return min(100, int(round_half_up(raw, places=0)))


def compute_streaks(
    counts: Mapping[str, int], today: date, window_days: int
) -> Tuple[int, int]:
    """Return ``(current_streak, longest_streak)`` over the window ending today.

    The current streak is the run of active days ending today, or ending
    yesterday when today has no activity yet.
    """
    days = [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]
    active = [counts.get(day_key(day), 0) > 0 for day in days]

    longest = run = 0
    for is_active in active:
        run = run + 1 if is_active else 0
        longest = max(longest, run)

    end = len(active) - 1
    if not active[end]:
        end -= 1
    current = 0
    while end >= 0 and active[end]:
        current += 1
        end -= 1
    return current, longest


@dataclass
class ActivitySummary:
    """A doctor's contribution graph and streaks."""

    doctor_id: str
    window_start: str
    window_end: str
    activity: Dict[str, int] = field(default_factory=dict)
    total_contributions: int = 0
    active_days: int = 0
    current_streak: int = 0
    longest_streak: int = 0


class ContributionAggregator:
    """Maintains doctor contribution statistics."""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the aggregator."""
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.clock = clock

    # Event handlers

    def on_new_case_approved(self, doctor_id: str) -> bool:
        """Count a newly approved case and mark today active."""

        def work(session: Session, now: datetime) -> bool:
            if not self._increment(
                session,
                doctor_id,
                total_cases_handled=DoctorProfile.total_cases_handled + 1,
                active_cases=DoctorProfile.active_cases + 1,
                last_active_at=now,
            ):
                return False
            self._bump_activity(session, doctor_id, now)
            return True

        return self._run("new_case_approved", doctor_id, work)

    def on_case_completed(self, doctor_id: str) -> bool:
        """Close one active case; never drops below zero."""

        def work(session: Session, now: datetime) -> bool:
            _ = now
            return self._increment(
                session,
                doctor_id,
                active_cases=case(
                    (DoctorProfile.active_cases > 0, DoctorProfile.active_cases - 1),
                    else_=0,
                ),
            )

        return self._run("case_completed", doctor_id, work)

    def on_version_committed(
        self, doctor_id: str, is_update: bool, condition_tags: Iterable[str] = ()
    ) -> bool:
        """Count a doctor's commit and learn the record's condition tags."""
        tags = [tag for tag in condition_tags if tag]

        def work(session: Session, now: datetime) -> bool:
            if is_update:
                counter = {"total_records_updated": DoctorProfile.total_records_updated + 1}
            else:
                counter = {"total_records_added": DoctorProfile.total_records_added + 1}
            if not self._increment(session, doctor_id, last_active_at=now, **counter):
                return False
            self._bump_activity(session, doctor_id, now)

            if tags:
                profile = self._load_profile(session, doctor_id)
                known = list(profile.condition_tags or [])
                merged = known + [tag for tag in dict.fromkeys(tags) if tag not in known]
                if merged != known:
                    profile.condition_tags = merged
                    session.flush()
            return True

        return self._run("version_committed", doctor_id, work)

    def on_response_recorded(self, doctor_id: str, hours: float) -> bool:
        """Fold a response time into the rolling average."""

        def work(session: Session, now: datetime) -> bool:
            _ = now
            profile = session.get(DoctorProfile, doctor_id)
            if profile is None:
                return False
            profile.average_response_time_hours = rolling_average(
                profile.average_response_time_hours,
                profile.total_cases_handled,
                hours,
            )
            session.flush()
            return True

        return self._run("response_recorded", doctor_id, work)

    def on_endorsement_added(self, doctor_id: str, skill: str) -> bool:
        """Count an endorsement and recompute the accuracy score."""

        def work(session: Session, now: datetime) -> bool:
            _ = now
            if not self._increment(session, doctor_id):
                return False
            self._upsert_counter(
                session,
                SkillEndorsementCount,
                {"doctor_id": doctor_id, "skill": skill},
                ["doctor_id", "skill"],
            )
            profile = self._load_profile(session, doctor_id)
            score = accuracy_score(
                profile.total_endorsements, profile.total_cases_handled
            )
            if score is not None and score != profile.record_accuracy_score:
                profile.record_accuracy_score = score
                session.flush()
            return True

        return self._run("endorsement_added", doctor_id, work)

    def record_case_approval(self, doctor_id: str, hours: float) -> None:
        """Apply an approval: the new case first, then its response time.

        The rolling average divides by the case count after the increment,
        so the two handlers must run in this order.
        """
        self.on_new_case_approved(doctor_id)
        self.on_response_recorded(doctor_id, hours)

    # Read side

    def get_profile(self, doctor_id: str) -> DoctorProfile:
        """Return a doctor's profile with its statistics."""
        with session_scope(self.session_factory) as session:
            return self._load_profile(session, doctor_id)

    def get_activity_summary(
        self, doctor_id: str, today: Optional[date] = None
    ) -> ActivitySummary:
        """Build the contribution graph for the trailing window."""
        today = today or self.clock().date()
        window_days = self.settings.activity_window_days
        start = day_key(today - timedelta(days=window_days - 1))
        end = day_key(today)

        with session_scope(self.session_factory) as session:
            self._load_profile(session, doctor_id)
            rows = session.execute(
                select(ActivityDay.day, ActivityDay.count)
                .where(
                    ActivityDay.doctor_id == doctor_id,
                    ActivityDay.day >= start,
                    ActivityDay.day <= end,
                )
                .order_by(ActivityDay.day)
            ).all()

        activity = {day: count for day, count in rows if count > 0}
        current, longest = compute_streaks(activity, today, window_days)
        return ActivitySummary(
            doctor_id=doctor_id,
            window_start=start,
            window_end=end,
            activity=activity,
            total_contributions=sum(activity.values()),
            active_days=len(activity),
            current_streak=current,
            longest_streak=longest,
        )

    # Internals

    def _run(
        self, event: str, doctor_id: str, work: Callable[[Session, datetime], bool]
    ) -> bool:
        """Run one handler in its own unit of work, retrying lost races."""
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.aggregator_max_attempts),
            wait=wait_random(min=0, max=0.05),
            retry=retry_if_exception_type((StaleDataError, OperationalError)),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with session_scope(self.session_factory) as session:
                        applied = work(session, self.clock())
        except (SQLAlchemyError, MedilockerError) as e:
            logger.error(
                "contribution_update_failed",
                contribution_event=event,
                doctor_id=doctor_id,
                error=str(e),
            )
            return False

        if not applied:
            logger.info(
                "contribution_update_skipped",
                contribution_event=event,
                doctor_id=doctor_id,
                reason="doctor profile not found",
            )
            return False
        logger.debug("contribution_updated", contribution_event=event, doctor_id=doctor_id)
        return True

    @staticmethod
    def _load_profile(session: Session, doctor_id: str) -> DoctorProfile:
        profile = session.get(DoctorProfile, doctor_id)
        if profile is None:
            raise NotFoundError("Doctor not found.")
        return profile

    @staticmethod
    def _increment(session: Session, doctor_id: str, **values: object) -> bool:
        """Apply atomic column updates, bumping the row version with them."""
        result = session.execute(
            update(DoctorProfile)
            .where(DoctorProfile.id == doctor_id)
            .values(row_version=DoctorProfile.row_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _bump_activity(self, session: Session, doctor_id: str, moment: datetime) -> None:
        self._upsert_counter(
            session,
            ActivityDay,
            {"doctor_id": doctor_id, "day": day_key(moment)},
            ["doctor_id", "day"],
        )

    @staticmethod
    def _upsert_counter(
        session: Session, model: type, key: Dict[str, str], key_columns: List[str]
    ) -> None:
        """``INSERT ... ON CONFLICT DO UPDATE SET count = count + 1``."""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise ConfigurationError(f"Unsupported database dialect: {dialect}")

        statement = insert(model).values(count=1, **key)
        statement = statement.on_conflict_do_update(
            index_elements=key_columns,
            set_={"count": model.count + 1},
        )
        session.execute(statement)
