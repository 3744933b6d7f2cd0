"""
Anomaly detection for cost patterns.

Flags unusual spending in already-aggregated telemetry: the latest time
bucket against its own history, and projects or categories far above the
average.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .aggregation import CategoryBucket, CategoryType, PeriodBucket, ProjectBucket


class AnomalyKind(Enum):
    SPIKE = "spike"
    DROP = "drop"
    PROJECT_OUTLIER = "project_outlier"
    CATEGORY_OUTLIER = "category_outlier"


class AnomalySeverity(Enum):
    """Severity levels for detected anomalies."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class AnomalyThresholds:
    """Tunable limits for the detection rules."""
    min_period_buckets: int = 3
    z_score: float = 2.0
    medium_score: float = 2.5
    high_score: float = 3.5
    project_outlier_ratio: float = 1.5
    category_outlier_ratio: float = 1.25
    min_outlier_score: float = 2.0

    def __post_init__(self):
        """Validate thresholds are usable."""
        if self.min_period_buckets < 2:
            raise ValueError("min_period_buckets must be >= 2")
        for name in ("z_score", "medium_score", "high_score",
                     "project_outlier_ratio", "category_outlier_ratio"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.medium_score > self.high_score:
            raise ValueError("medium_score must be <= high_score")

    def severity_for(self, score: float) -> AnomalySeverity:
        if score >= self.high_score:
            return AnomalySeverity.HIGH
        if score >= self.medium_score:
            return AnomalySeverity.MEDIUM
        return AnomalySeverity.LOW


DEFAULT_THRESHOLDS = AnomalyThresholds()


@dataclass(frozen=True)
class AnomalyPrimitive:
    """Detected anomaly with its expected and observed cost."""
    kind: AnomalyKind
    severity: AnomalySeverity
    score: float
    expected_cost_usd: float
    observed_cost_usd: float
    delta_cost_usd: float
    percent_delta: float
    message: str
    bucket_start: Optional[int] = None
    timestamp: Optional[int] = None
    project: Optional[str] = None
    category: Optional[str] = None
    category_type: Optional[CategoryType] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "score": self.score,
        }
        if self.bucket_start is not None:
            data["bucketStart"] = self.bucket_start
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        if self.project is not None:
            data["project"] = self.project
        if self.category is not None:
            data["category"] = self.category
        if self.category_type is not None:
            data["categoryType"] = self.category_type.value
        data.update({
            "expectedCostUsd": self.expected_cost_usd,
            "observedCostUsd": self.observed_cost_usd,
            "deltaCostUsd": self.delta_cost_usd,
            "percentDelta": self.percent_delta,
            "message": self.message,
        })
        return data


def to_percent_delta(observed: float, expected: float) -> float:
    """Relative deviation of ``observed`` from ``expected``.

    A non-positive expectation yields 0 when nothing was observed either,
    and 1 otherwise.
    """
    if expected <= 0 and observed <= 0:
        return 0.0
    if expected <= 0:
        return 1.0
    return (observed - expected) / expected


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _population_std_dev(values: Sequence[float], mean: float) -> float:
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def detect_period_anomaly(
    period: Sequence[PeriodBucket],
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> List[AnomalyPrimitive]:
    """Score the latest bucket's cost against the buckets before it.

    Emits nothing with too little history, with a flat history (zero
    standard deviation), or when ``|z| < thresholds.z_score``.
    """
    if len(period) < thresholds.min_period_buckets:
        return []

    observed = period[-1]
    historical = [bucket.cost_usd for bucket in period[:-1]]
    mean = _mean(historical)
    std_dev = _population_std_dev(historical, mean)
    if std_dev == 0:
        return []

    z_score = (observed.cost_usd - mean) / std_dev
    if abs(z_score) < thresholds.z_score:
        return []

    kind = AnomalyKind.SPIKE if z_score > 0 else AnomalyKind.DROP
    score = abs(z_score)
    direction = "above" if kind == AnomalyKind.SPIKE else "below"
    return [AnomalyPrimitive(
        kind=kind,
        severity=thresholds.severity_for(score),
        score=score,
        expected_cost_usd=mean,
        observed_cost_usd=observed.cost_usd,
        delta_cost_usd=observed.cost_usd - mean,
        percent_delta=to_percent_delta(observed.cost_usd, mean),
        message=(
            f"Cost {kind.value} in {observed.label}: ${observed.cost_usd:.2f} is "
            f"{score:.1f} standard deviations {direction} the mean of ${mean:.2f}"
        ),
        bucket_start=observed.bucket_start,
        timestamp=observed.bucket_end,
    )]


def detect_project_outliers(
    projects: Sequence[ProjectBucket],
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> List[AnomalyPrimitive]:
    """Flag projects costing at least ``1 + project_outlier_ratio`` times the mean.

    The mean includes the candidate project itself.
    """
    if not projects:
        return []
    project_mean = _mean([p.cost_usd for p in projects])
    if project_mean <= 0:
        return []

    anomalies = []
    for project in projects:
        percent_delta = to_percent_delta(project.cost_usd, project_mean)
        if percent_delta < thresholds.project_outlier_ratio:
            continue
        score = max(thresholds.min_outlier_score, percent_delta * 2)
        anomalies.append(AnomalyPrimitive(
            kind=AnomalyKind.PROJECT_OUTLIER,
            severity=thresholds.severity_for(score),
            score=score,
            expected_cost_usd=project_mean,
            observed_cost_usd=project.cost_usd,
            delta_cost_usd=project.cost_usd - project_mean,
            percent_delta=percent_delta,
            message=(
                f"Project '{project.project}' spent ${project.cost_usd:.2f}, "
                f"{percent_delta:+.0%} vs project mean ${project_mean:.2f}"
            ),
            project=project.project,
        ))
    return anomalies


def detect_category_outliers(
    categories: Sequence[CategoryBucket],
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> List[AnomalyPrimitive]:
    """Flag agents or models costing at least ``1 + category_outlier_ratio`` times the mean."""
    if not categories:
        return []
    category_mean = _mean([c.cost_usd for c in categories])
    if category_mean <= 0:
        return []

    anomalies = []
    for category in categories:
        percent_delta = to_percent_delta(category.cost_usd, category_mean)
        if percent_delta < thresholds.category_outlier_ratio:
            continue
        score = max(thresholds.min_outlier_score, percent_delta * 2)
        anomalies.append(AnomalyPrimitive(
            kind=AnomalyKind.CATEGORY_OUTLIER,
            severity=thresholds.severity_for(score),
            score=score,
            expected_cost_usd=category_mean,
            observed_cost_usd=category.cost_usd,
            delta_cost_usd=category.cost_usd - category_mean,
            percent_delta=percent_delta,
            message=(
                f"{category.category_type.value.capitalize()} '{category.category}' spent "
                f"${category.cost_usd:.2f}, {percent_delta:+.0%} vs mean ${category_mean:.2f}"
            ),
            category=category.category,
            category_type=category.category_type,
        ))
    return anomalies


def detect_anomalies_from_aggregates(
    period: Sequence[PeriodBucket],
    projects: Sequence[ProjectBucket],
    categories: Sequence[CategoryBucket],
    thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS,
) -> List[AnomalyPrimitive]:
    """Detect anomalies across the aggregates of one query window.

    Rules:
    - Spike/drop: latest period bucket with |z-score| >= 2 against the
      earlier buckets (population standard deviation)
    - Project outlier: project cost >= 2.5x the mean project cost
    - Category outlier: agent/model cost >= 2.25x the mean category cost

    Severity is high from score 3.5, medium from 2.5, low otherwise.

    Args:
        period: Period buckets in ascending time order
        projects: Project buckets
        categories: Category buckets
        thresholds: Rule limits (defaults as above)

    Returns:
        All anomalies, highest score first (empty if none)
    """
    anomalies = (
        detect_period_anomaly(period, thresholds)
        + detect_project_outliers(projects, thresholds)
        + detect_category_outliers(categories, thresholds)
    )
    return sorted(anomalies, key=lambda a: a.score, reverse=True)
