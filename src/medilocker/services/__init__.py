"""Medilocker services."""

from medilocker.services.access_enforcer import AccessEnforcer
from medilocker.services.access_grants import AccessGrantService, Collaborator
from medilocker.services.contribution import ActivitySummary, ContributionAggregator
from medilocker.services.endorsement_service import EndorsementService
from medilocker.services.profile_service import ProfileService
from medilocker.services.record_service import RecordService
from medilocker.services.record_store import RecordStore

__all__ = [
    "AccessEnforcer",
    "AccessGrantService",
    "ActivitySummary",
    "Collaborator",
    "ContributionAggregator",
    "EndorsementService",
    "ProfileService",
    "RecordService",
    "RecordStore",
]
