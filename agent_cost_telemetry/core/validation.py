"""
Telemetry validation gate.

Validates and normalizes incoming telemetry before it reaches the row source,
and serves the bounded per-task and per-run listings.

Validation Order (first failure wins, so messages are deterministic):
1. Caller identity
2. agent, model
3. inputTokens, outputTokens
4. estimatedCostUsd
5. timestamp
6. runId, sessionKey
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .errors import TelemetryValidationError, Unauthenticated
from .identity import IdentityProvider
from agent_cost_telemetry.storage.models import TelemetryRecord
from agent_cost_telemetry.storage.repository import RowSource

logger = logging.getLogger(__name__)

MAX_AGENT_LEN = 80
MAX_MODEL_LEN = 120
MAX_RUN_ID_LEN = 200
MAX_SESSION_KEY_LEN = 200

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


@dataclass(frozen=True)
class RecordResult:
    """Outcome of a successful record call."""
    id: str

    def to_dict(self):
        return {"id": self.id}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def require_non_empty_trimmed(value: Any, field_name: str, max_len: int) -> str:
    """Trim a required string and enforce 1..max_len characters."""
    trimmed = value.strip() if isinstance(value, str) else ""
    if not trimmed:
        raise TelemetryValidationError(f"{field_name} must be a non-empty string", field_name)
    if len(trimmed) > max_len:
        raise TelemetryValidationError(f"{field_name} must be <= {max_len} characters", field_name)
    return trimmed


def require_non_negative_integer(value: Any, field_name: str) -> int:
    """Accept finite, integral, non-negative numbers; integral floats become ints."""
    if (
        not _is_number(value)
        or not math.isfinite(value)
        or (isinstance(value, float) and not value.is_integer())
        or value < 0
    ):
        raise TelemetryValidationError(f"{field_name} must be a non-negative integer", field_name)
    return int(value)


def require_non_negative_finite(value: Any, field_name: str) -> float:
    if not _is_number(value) or not math.isfinite(value) or value < 0:
        raise TelemetryValidationError(f"{field_name} must be a non-negative number", field_name)
    return float(value)


def normalize_optional_string(value: Optional[str], field_name: str, max_len: int) -> Optional[str]:
    """Trim an optional string; empty after trimming means absent."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise TelemetryValidationError(f"{field_name} must be a string", field_name)
    trimmed = value.strip()
    if len(trimmed) > max_len:
        raise TelemetryValidationError(f"{field_name} must be <= {max_len} characters", field_name)
    if not trimmed:
        return None
    return trimmed


def normalize_limit(limit: Any = None) -> int:
    """Default to 50, reject non-integers and values below 1, cap at 200."""
    if limit is None:
        return DEFAULT_LIMIT
    if (
        not _is_number(limit)
        or not math.isfinite(limit)
        or (isinstance(limit, float) and not limit.is_integer())
    ):
        raise TelemetryValidationError("limit must be an integer", "limit")
    if limit < 1:
        raise TelemetryValidationError("limit must be >= 1", "limit")
    return min(int(limit), MAX_LIMIT)


def record_telemetry(
    identity_provider: IdentityProvider,
    row_source: RowSource,
    task_id: str,
    agent: str,
    model: str,
    input_tokens: Any,
    output_tokens: Any,
    estimated_cost_usd: Any,
    timestamp: Any = None,
    run_id: Optional[str] = None,
    session_key: Optional[str] = None,
    now: Callable[[], int] = now_ms,
) -> RecordResult:
    """Validate one telemetry record and append it to the row source.

    Nothing is written unless every check passes.

    Args:
        identity_provider: Source of the ambient caller identity
        row_source: Append-only store receiving the record
        task_id: Task the run belongs to (not checked for existence)
        agent: Agent name, 1-80 characters after trimming
        model: Model name, 1-120 characters after trimming
        input_tokens: Non-negative integer
        output_tokens: Non-negative integer
        estimated_cost_usd: Non-negative finite number
        timestamp: Epoch milliseconds; defaults to ``now()``
        run_id: Optional run identifier, at most 200 characters
        session_key: Optional session key, at most 200 characters
        now: Clock returning epoch milliseconds

    Returns:
        RecordResult with the identifier assigned by the row source

    Raises:
        Unauthenticated: If no caller identity is established
        TelemetryValidationError: If any field is invalid
    """
    identity = identity_provider.get_user_identity()
    if identity is None:
        raise Unauthenticated()

    try:
        record = TelemetryRecord(
            task_id=task_id,
            agent=require_non_empty_trimmed(agent, "agent", MAX_AGENT_LEN),
            model=require_non_empty_trimmed(model, "model", MAX_MODEL_LEN),
            input_tokens=require_non_negative_integer(input_tokens, "inputTokens"),
            output_tokens=require_non_negative_integer(output_tokens, "outputTokens"),
            estimated_cost_usd=require_non_negative_finite(estimated_cost_usd, "estimatedCostUsd"),
            timestamp=(
                now() if timestamp is None
                else require_non_negative_integer(timestamp, "timestamp")
            ),
            run_id=normalize_optional_string(run_id, "runId", MAX_RUN_ID_LEN),
            session_key=normalize_optional_string(session_key, "sessionKey", MAX_SESSION_KEY_LEN),
        )
    except TelemetryValidationError as e:
        logger.info("Rejected telemetry from %s for task %s: %s", identity.token_identifier, task_id, e)
        raise

    record_id = row_source.insert(record)
    logger.debug("Recorded telemetry %s (agent=%s, model=%s)", record_id, record.agent, record.model)
    return RecordResult(id=record_id)


def list_by_task(row_source: RowSource, task_id: str, limit: Any = None) -> List[TelemetryRecord]:
    """Newest telemetry rows for a task, at most ``limit`` (default 50, max 200)."""
    return row_source.query_by_task(task_id, normalize_limit(limit))


def list_by_run(row_source: RowSource, run_id: Any, limit: Any = None) -> List[TelemetryRecord]:
    """Newest telemetry rows for a run, at most ``limit`` (default 50, max 200).

    Raises:
        TelemetryValidationError: If ``run_id`` is empty or too long, or
            ``limit`` is invalid
    """
    run_id = require_non_empty_trimmed(run_id, "runId", MAX_RUN_ID_LEN)
    return row_source.query_by_run(run_id, normalize_limit(limit))
