"""
Time-series and dimensional aggregation of telemetry rows.

All functions are pure single-pass computations over in-memory rows.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping

from .errors import TelemetryValidationError
from agent_cost_telemetry.storage.models import TelemetryRecord

UNASSIGNED_PROJECT = "unassigned"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Range of bucket starts that format_bucket_label can render (years 1 to 9999).
MIN_LABEL_MS = -62_135_596_800_000
MAX_LABEL_MS = 253_402_300_799_999


class Granularity(Enum):
    """Fixed bucket widths for period aggregation."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"

    @property
    def bucket_size_ms(self) -> int:
        return _BUCKET_SIZE_MS[self]

    @classmethod
    def coerce(cls, value: Any) -> "Granularity":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(g.value for g in cls)
            raise TelemetryValidationError(f"granularity must be one of: {valid}", "granularity")


_BUCKET_SIZE_MS = {
    Granularity.HOUR: 60 * 60 * 1000,
    Granularity.DAY: 24 * 60 * 60 * 1000,
    Granularity.WEEK: 7 * 24 * 60 * 60 * 1000,
}


class CategoryType(Enum):
    """Row attribute used as the category key."""
    AGENT = "agent"
    MODEL = "model"

    @classmethod
    def coerce(cls, value: Any) -> "CategoryType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            raise TelemetryValidationError(f"categoryType must be one of: {valid}", "categoryType")


@dataclass
class PeriodBucket:
    """Sums for one fixed-width time interval ``[bucket_start, bucket_end]``."""
    bucket_start: int
    bucket_end: int
    label: str
    entries: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    def add(self, row: TelemetryRecord) -> None:
        self.entries += 1
        self.input_tokens += row.input_tokens
        self.output_tokens += row.output_tokens
        self.cost_usd += row.estimated_cost_usd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucketStart": self.bucket_start,
            "bucketEnd": self.bucket_end,
            "label": self.label,
            "entries": self.entries,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "costUsd": self.cost_usd,
        }


@dataclass
class ProjectBucket:
    """Sums for all rows whose task resolves to ``project``."""
    project: str
    entries: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    def add(self, row: TelemetryRecord) -> None:
        self.entries += 1
        self.input_tokens += row.input_tokens
        self.output_tokens += row.output_tokens
        self.cost_usd += row.estimated_cost_usd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project,
            "entries": self.entries,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "costUsd": self.cost_usd,
        }


@dataclass
class CategoryBucket:
    """Sums for all rows sharing an agent or model value."""
    category: str
    category_type: CategoryType
    entries: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    def add(self, row: TelemetryRecord) -> None:
        self.entries += 1
        self.input_tokens += row.input_tokens
        self.output_tokens += row.output_tokens
        self.cost_usd += row.estimated_cost_usd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "categoryType": self.category_type.value,
            "entries": self.entries,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "costUsd": self.cost_usd,
        }


def format_bucket_label(bucket_start: int, granularity: Granularity) -> str:
    """Render a bucket start as ``YYYY-MM-DDTHH:00:00Z`` (hour) or ``YYYY-MM-DD``."""
    moment = _EPOCH + timedelta(milliseconds=bucket_start)
    if granularity == Granularity.HOUR:
        return moment.strftime("%Y-%m-%dT%H:00:00Z")
    return moment.strftime("%Y-%m-%d")


def aggregate_by_period(
    rows: Iterable[TelemetryRecord],
    granularity: Any,
    start_ms: int,
    end_ms: int,
) -> List[PeriodBucket]:
    """Bucket rows into contiguous, gap-filled intervals covering the range.

    The first bucket is aligned to the epoch, not to ``start_ms``, so it may
    begin before the requested range. Rows outside ``[start_ms, end_ms]`` are
    dropped even when their natural bucket is part of the series.

    Args:
        rows: Telemetry rows in any order
        granularity: ``Granularity`` or one of "hour", "day", "week"
        start_ms: Inclusive range start in epoch milliseconds
        end_ms: Inclusive range end in epoch milliseconds

    Returns:
        Buckets in ascending time order, empty ones zero-filled
    """
    granularity = Granularity.coerce(granularity)
    size = granularity.bucket_size_ms

    buckets: Dict[int, PeriodBucket] = {}
    bucket_start = (start_ms // size) * size
    while bucket_start <= end_ms:
        buckets[bucket_start] = PeriodBucket(
            bucket_start=bucket_start,
            bucket_end=bucket_start + size - 1,
            label=format_bucket_label(bucket_start, granularity),
        )
        bucket_start += size

    for row in rows:
        if row.timestamp < start_ms or row.timestamp > end_ms:
            continue
        bucket = buckets.get((row.timestamp // size) * size)
        if bucket is None:
            continue
        bucket.add(row)

    return sorted(buckets.values(), key=lambda b: b.bucket_start)


def aggregate_by_project(
    rows: Iterable[TelemetryRecord],
    project_by_task: Mapping[str, str],
) -> List[ProjectBucket]:
    """Group rows by the project their task resolves to, highest cost first.

    Tasks missing from ``project_by_task`` are grouped under "unassigned".
    """
    buckets: Dict[str, ProjectBucket] = {}
    for row in rows:
        project = project_by_task.get(row.task_id) or UNASSIGNED_PROJECT
        bucket = buckets.get(project)
        if bucket is None:
            bucket = buckets[project] = ProjectBucket(project=project)
        bucket.add(row)
    return sorted(buckets.values(), key=lambda b: b.cost_usd, reverse=True)


def aggregate_by_category(rows: Iterable[TelemetryRecord], category_type: Any) -> List[CategoryBucket]:
    """Group rows by agent or model, highest cost first."""
    category_type = CategoryType.coerce(category_type)
    buckets: Dict[str, CategoryBucket] = {}
    for row in rows:
        key = row.agent if category_type == CategoryType.AGENT else row.model
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = CategoryBucket(category=key, category_type=category_type)
        bucket.add(row)
    return sorted(buckets.values(), key=lambda b: b.cost_usd, reverse=True)
