"""Business logic services."""

from engagement_service.services.activity_recorder import ActivityRecorder, RecordResult
from engagement_service.services.activity_store import ActivityRecord, ActivityStore
from engagement_service.services.campaign_state import (
    CampaignRunRecord,
    CampaignStateStore,
    InMemoryCampaignStateStore,
)
from engagement_service.services.memory_store import InMemoryActivityStore
from engagement_service.services.scoring import (
    LeadAggregate,
    compute_leaderboard,
    most_engaged,
)
from engagement_service.services.segment_resolver import AudienceEntry, SegmentResolver

__all__ = [
    "ActivityRecord",
    "ActivityRecorder",
    "ActivityStore",
    "AudienceEntry",
    "CampaignRunRecord",
    "CampaignStateStore",
    "InMemoryActivityStore",
    "InMemoryCampaignStateStore",
    "LeadAggregate",
    "RecordResult",
    "SegmentResolver",
    "compute_leaderboard",
    "most_engaged",
]
