"""
Configuration management and loading.

Reads storage, analytics defaults and anomaly thresholds from YAML.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from agent_cost_telemetry.core.aggregation import CategoryType, Granularity
from agent_cost_telemetry.core.anomaly import AnomalyThresholds
from agent_cost_telemetry.storage.db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class AnalyticsConfig:
    """Defaults applied when a query omits its window or dimensions."""
    default_window_days: int = 7
    default_granularity: Granularity = Granularity.DAY
    default_category_type: CategoryType = CategoryType.AGENT

    def __post_init__(self):
        if self.default_window_days <= 0:
            raise ValueError("default_window_days must be > 0")


@dataclass(frozen=True)
class TelemetryConfig:
    """Complete telemetry configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    anomaly: AnomalyThresholds = field(default_factory=AnomalyThresholds)


# YAML key -> AnomalyThresholds field
_ANOMALY_KEYS = {
    "z_score_threshold": "z_score",
    "medium_score": "medium_score",
    "high_score": "high_score",
    "project_outlier_ratio": "project_outlier_ratio",
    "category_outlier_ratio": "category_outlier_ratio",
}


def load_telemetry_config(path: Optional[str] = None) -> TelemetryConfig:
    """Load and validate telemetry configuration from a YAML file.

    Strict validation ensures no silent misconfigurations: unknown keys
    and wrongly typed values are rejected. Every section is optional.

    Args:
        path: Path to YAML configuration file, or None for defaults

    Returns:
        Validated TelemetryConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return TelemetryConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Telemetry config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return TelemetryConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = {'storage', 'analytics', 'anomaly'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return TelemetryConfig(
        storage=_parse_storage(_section(raw_config, 'storage', {'db_path'})),
        analytics=_parse_analytics(_section(
            raw_config, 'analytics',
            {'default_window_days', 'default_granularity', 'default_category_type'},
        )),
        anomaly=_parse_anomaly(_section(raw_config, 'anomaly', set(_ANOMALY_KEYS))),
    )


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict[str, Any]:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _parse_storage(data: Dict[str, Any]) -> StorageConfig:
    if 'db_path' not in data:
        return StorageConfig()
    db_path = data['db_path']
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'db_path' in storage must be a non-empty string")
    return StorageConfig(db_path=db_path)


def _parse_analytics(data: Dict[str, Any]) -> AnalyticsConfig:
    defaults = AnalyticsConfig()

    window_days = data.get('default_window_days', defaults.default_window_days)
    if isinstance(window_days, bool) or not isinstance(window_days, int):
        raise ValueError("'default_window_days' in analytics must be an integer")

    granularity = data.get('default_granularity', defaults.default_granularity.value)
    try:
        granularity = Granularity(granularity)
    except ValueError:
        valid = [g.value for g in Granularity]
        raise ValueError(f"'default_granularity' in analytics must be one of: {valid}")

    category_type = data.get('default_category_type', defaults.default_category_type.value)
    try:
        category_type = CategoryType(category_type)
    except ValueError:
        valid = [c.value for c in CategoryType]
        raise ValueError(f"'default_category_type' in analytics must be one of: {valid}")

    return AnalyticsConfig(
        default_window_days=window_days,
        default_granularity=granularity,
        default_category_type=category_type,
    )


def _parse_anomaly(data: Dict[str, Any]) -> AnomalyThresholds:
    overrides = {}
    for key, attr in _ANOMALY_KEYS.items():
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"'{key}' in anomaly must be > 0")
        overrides[attr] = float(value)
    return AnomalyThresholds(**overrides)
