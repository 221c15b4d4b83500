"""
Port interface for publishing processing metrics.

Implementations: CloudWatchMetricsAdapter (adapters/)
"""

from __future__ import annotations

from typing import Dict, Optional, Protocol, runtime_checkable

from domain.models import StatisticsSnapshot


@runtime_checkable
class MetricsPublisherPort(Protocol):
    """Abstract interface for a metrics sink."""

    def publish_statistics(self, snapshot: StatisticsSnapshot) -> None:
        """Send a run-statistics snapshot."""
        ...

    def record_participant_mapping(
        self,
        total_participants: int,
        mapped_slack: int,
        mapped_notion: int,
        dimensions: Optional[Dict[str, str]] = None,
    ) -> None:
        """Send per-run identity mapping counts and rates."""
        ...
