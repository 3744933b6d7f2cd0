"""
Analytics facade over the telemetry ledger.

Every query recomputes from raw rows in the window; nothing is cached or
persisted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .aggregation import (
    CategoryBucket,
    CategoryType,
    Granularity,
    MAX_LABEL_MS,
    MIN_LABEL_MS,
    PeriodBucket,
    ProjectBucket,
    UNASSIGNED_PROJECT,
    aggregate_by_category,
    aggregate_by_period,
    aggregate_by_project,
)
from .anomaly import AnomalyPrimitive, AnomalyThresholds, DEFAULT_THRESHOLDS, detect_anomalies_from_aggregates
from .errors import TelemetryRangeError, TelemetryValidationError
from .validation import now_ms
from agent_cost_telemetry.storage.models import TelemetryRecord
from agent_cost_telemetry.storage.repository import ProjectResolver, RowSource

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_WINDOW_DAYS = 7


@dataclass(frozen=True)
class AnalyticsWindow:
    """Resolved query inputs."""
    start_ms: int
    end_ms: int
    granularity: Granularity
    category_type: CategoryType


@dataclass
class AnalyticsTotals:
    entries: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    unique_projects: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": self.entries,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "costUsd": self.cost_usd,
            "uniqueProjects": self.unique_projects,
        }


@dataclass
class AnalyticsResult:
    """Combined cost analytics for one window."""
    window: AnalyticsWindow
    totals: AnalyticsTotals
    period: List[PeriodBucket] = field(default_factory=list)
    projects: List[ProjectBucket] = field(default_factory=list)
    categories: List[CategoryBucket] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totals": self.totals.to_dict(),
            "period": [b.to_dict() for b in self.period],
            "projects": [b.to_dict() for b in self.projects],
            "categories": [b.to_dict() for b in self.categories],
        }


@dataclass
class AnomalyReport:
    window: AnalyticsWindow
    anomalies: List[AnomalyPrimitive] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"anomalies": [a.to_dict() for a in self.anomalies]}


class TelemetryAnalytics:
    """Orchestrates row source, aggregators and anomaly detection.

    Holds only its collaborators, so a single instance can serve
    concurrent callers.
    """

    def __init__(
        self,
        row_source: RowSource,
        project_resolver: ProjectResolver,
        thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        default_granularity: Granularity = Granularity.DAY,
        default_category_type: CategoryType = CategoryType.AGENT,
        clock: Callable[[], int] = now_ms,
    ):
        self.row_source = row_source
        self.project_resolver = project_resolver
        self.thresholds = thresholds
        self.default_window_days = default_window_days
        self.default_granularity = default_granularity
        self.default_category_type = default_category_type
        self.clock = clock

    def resolve_window(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        granularity: Any = None,
        category_type: Any = None,
    ) -> AnalyticsWindow:
        """Apply defaults and reject inverted ranges.

        Raises:
            TelemetryRangeError: If ``start_ms > end_ms``
            TelemetryValidationError: If granularity or category type is
                unknown, or the window has buckets outside years 1 to 9999
        """
        if end_ms is None:
            end_ms = self.clock()
        if start_ms is None:
            start_ms = end_ms - self.default_window_days * DAY_MS
        if start_ms > end_ms:
            raise TelemetryRangeError()
        granularity = Granularity.coerce(granularity or self.default_granularity)
        if end_ms > MAX_LABEL_MS:
            raise TelemetryValidationError("endMs must be before year 10000", "endMs")
        size = granularity.bucket_size_ms
        if (start_ms // size) * size < MIN_LABEL_MS:
            raise TelemetryValidationError("startMs must be after year 1", "startMs")
        return AnalyticsWindow(
            start_ms=start_ms,
            end_ms=end_ms,
            granularity=granularity,
            category_type=CategoryType.coerce(category_type or self.default_category_type),
        )

    def get_analytics(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        granularity: Any = None,
        category_type: Any = None,
    ) -> AnalyticsResult:
        """Totals, period series, project and category breakdown for a window."""
        window = self.resolve_window(start_ms, end_ms, granularity, category_type)
        rows, project_by_task = self._load(window)
        return self._aggregate(window, rows, project_by_task)

    def get_anomaly_primitives(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        granularity: Any = None,
        category_type: Any = None,
    ) -> AnomalyReport:
        """Anomalies detected over the aggregates of a window, highest score first."""
        window = self.resolve_window(start_ms, end_ms, granularity, category_type)
        rows, project_by_task = self._load(window)
        result = self._aggregate(window, rows, project_by_task)
        anomalies = detect_anomalies_from_aggregates(
            result.period,
            result.projects,
            result.categories,
            self.thresholds,
        )
        if anomalies:
            logger.info(
                "Detected %d cost anomalies between %d and %d",
                len(anomalies), window.start_ms, window.end_ms,
            )
        return AnomalyReport(window=window, anomalies=anomalies)

    def _load(self, window: AnalyticsWindow):
        rows = self.row_source.query_range(window.start_ms, window.end_ms)
        project_by_task = self.project_resolver.resolve_projects({row.task_id for row in rows})
        logger.debug(
            "Loaded %d telemetry rows for [%d, %d] (%s, %s)",
            len(rows), window.start_ms, window.end_ms,
            window.granularity.value, window.category_type.value,
        )
        return rows, project_by_task

    @staticmethod
    def _aggregate(
        window: AnalyticsWindow,
        rows: List[TelemetryRecord],
        project_by_task: Dict[str, str],
    ) -> AnalyticsResult:
        totals = AnalyticsTotals()
        projects_seen = set()
        for row in rows:
            totals.entries += 1
            totals.input_tokens += row.input_tokens
            totals.output_tokens += row.output_tokens
            totals.cost_usd += row.estimated_cost_usd
            projects_seen.add(project_by_task.get(row.task_id) or UNASSIGNED_PROJECT)
        totals.unique_projects = len(projects_seen)

        return AnalyticsResult(
            window=window,
            totals=totals,
            period=aggregate_by_period(rows, window.granularity, window.start_ms, window.end_ms),
            projects=aggregate_by_project(rows, project_by_task),
            categories=aggregate_by_category(rows, window.category_type),
        )
