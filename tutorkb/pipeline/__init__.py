"""Pipeline runtime components: status broadcasting and background runs."""

from tutorkb.pipeline.scheduler import IngestionScheduler
from tutorkb.pipeline.status_tracker import ALL_ITEMS, StatusTracker

__all__ = [
    "ALL_ITEMS",
    "IngestionScheduler",
    "StatusTracker",
]
