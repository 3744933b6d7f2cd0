"""
Data models for storage layer.

Defines the telemetry record persisted by the row source.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TelemetryRecord:
    """Immutable record of one agent run's token usage and cost.

    Append-only rows that form the ledger analytics are computed from.
    Once written, these records must never be modified.
    """
    task_id: str
    agent: str
    model: str
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    timestamp: int  # epoch milliseconds
    run_id: Optional[str] = None
    session_key: Optional[str] = None
    id: Optional[str] = None  # assigned by the row source on insert

    def with_id(self, record_id: str) -> "TelemetryRecord":
        """Return a copy carrying the identifier assigned at insert."""
        return replace(self, id=record_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase field names of the wire format."""
        data = {
            "id": self.id,
            "taskId": self.task_id,
            "agent": self.agent,
            "model": self.model,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "estimatedCostUsd": self.estimated_cost_usd,
            "timestamp": self.timestamp,
        }
        if self.run_id is not None:
            data["runId"] = self.run_id
        if self.session_key is not None:
            data["sessionKey"] = self.session_key
        return data
