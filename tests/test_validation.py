"""
Unit tests for the telemetry validation gate.

Tests authentication, field validation order, normalization and listings.
"""

import logging
import math

import pytest

from agent_cost_telemetry.core.errors import TelemetryValidationError, Unauthenticated
from agent_cost_telemetry.core.identity import StaticIdentityProvider
from agent_cost_telemetry.core.validation import (
    list_by_run,
    list_by_task,
    normalize_limit,
    record_telemetry,
)
from agent_cost_telemetry.storage.models import TelemetryRecord
from agent_cost_telemetry.storage.repository import InMemoryTelemetryRepository


def make_row(**overrides) -> TelemetryRecord:
    """Create a stored telemetry row for testing."""
    fields = dict(
        task_id="task-1",
        agent="forge",
        model="gpt-5",
        input_tokens=100,
        output_tokens=50,
        estimated_cost_usd=0.1234,
        timestamp=1_700_000_000_000,
    )
    fields.update(overrides)
    return TelemetryRecord(**fields)


class TestRecordTelemetry:
    """Test the record operation end to end against an in-memory store."""

    def setup_method(self):
        self.store = InMemoryTelemetryRepository()
        self.identity = StaticIdentityProvider("test-user")

    def record(self, **overrides):
        args = dict(
            task_id="task-c",
            agent="forge",
            model="gpt-5",
            input_tokens=1,
            output_tokens=2,
            estimated_cost_usd=0.1,
        )
        args.update(overrides)
        return record_telemetry(self.identity, self.store, **args)

    def test_writes_row_with_explicit_timestamp_and_run_session(self):
        """Test a full record is stored exactly as given."""
        result = self.record(
            task_id="task-a",
            model="gpt-5-mini",
            input_tokens=1200,
            output_tokens=430,
            estimated_cost_usd=0.0187,
            timestamp=1_700_000_000_000,
            run_id="run-1",
            session_key="session-1",
        )

        assert result.id == "ct-1"
        assert result.to_dict() == {"id": "ct-1"}
        assert len(self.store.records) == 1
        stored = self.store.records[0]
        assert stored.task_id == "task-a"
        assert stored.agent == "forge"
        assert stored.model == "gpt-5-mini"
        assert stored.input_tokens == 1200
        assert stored.output_tokens == 430
        assert stored.estimated_cost_usd == 0.0187
        assert stored.timestamp == 1_700_000_000_000
        assert stored.run_id == "run-1"
        assert stored.session_key == "session-1"

    def test_defaults_timestamp_and_normalizes_empty_run_session(self):
        """Test omitted timestamp uses the clock and blank optionals become None."""
        record_telemetry(
            self.identity,
            self.store,
            task_id="task-b",
            agent="sentinel",
            model="gpt-5",
            input_tokens=1,
            output_tokens=2,
            estimated_cost_usd=0,
            run_id="  ",
            session_key="",
            now=lambda: 1_800_000_000_000,
        )

        stored = self.store.records[0]
        assert stored.timestamp == 1_800_000_000_000
        assert stored.run_id is None
        assert stored.session_key is None
        assert "runId" not in stored.to_dict()

    def test_trims_strings(self):
        """Test agent, model and optional strings are trimmed."""
        self.record(agent="  forge ", model="\tgpt-5\n", run_id=" run-9 ", session_key=" s ")

        stored = self.store.records[0]
        assert stored.agent == "forge"
        assert stored.model == "gpt-5"
        assert stored.run_id == "run-9"
        assert stored.session_key == "s"

    def test_unauthenticated_rejected_before_validation(self):
        """Test missing identity fails first, even with invalid fields."""
        with pytest.raises(Unauthenticated, match="Unauthenticated"):
            record_telemetry(
                StaticIdentityProvider(None),
                self.store,
                task_id="task-1",
                agent="",
                model="",
                input_tokens=-1,
                output_tokens=-1,
                estimated_cost_usd=-1,
            )
        assert self.store.records == []

    @pytest.mark.parametrize("agent, message", [
        ("   ", "agent must be a non-empty string"),
        ("", "agent must be a non-empty string"),
        ("a" * 81, "agent must be <= 80 characters"),
    ])
    def test_agent_validation(self, agent, message):
        with pytest.raises(TelemetryValidationError, match=message):
            self.record(agent=agent)

    def test_agent_at_length_limit_is_accepted(self):
        self.record(agent="a" * 80, model="m" * 120)
        assert len(self.store.records) == 1

    def test_length_counts_code_points(self):
        """Characters outside the BMP count once towards the limit."""
        self.record(agent="\U0001F916" * 80)
        assert self.store.records[0].agent == "\U0001F916" * 80

        with pytest.raises(TelemetryValidationError, match="agent must be <= 80 characters"):
            self.record(agent="\U0001F916" * 81)

    def test_rejection_is_logged_with_caller(self, caplog):
        caplog.set_level(logging.INFO, logger="agent_cost_telemetry.core.validation")

        with pytest.raises(TelemetryValidationError):
            self.record(agent=" ")

        assert "Rejected telemetry from local|test-user for task task-c" in caplog.text
        assert "agent must be a non-empty string" in caplog.text

    @pytest.mark.parametrize("model, message", [
        ("", "model must be a non-empty string"),
        ("m" * 121, "model must be <= 120 characters"),
    ])
    def test_model_validation(self, model, message):
        with pytest.raises(TelemetryValidationError, match=message):
            self.record(model=model)

    @pytest.mark.parametrize("field, arg", [
        ("inputTokens", "input_tokens"),
        ("outputTokens", "output_tokens"),
        ("timestamp", "timestamp"),
    ])
    @pytest.mark.parametrize("value", [-1, 1.5, math.nan, math.inf, -math.inf, "5", True])
    def test_integer_fields_reject_invalid_values(self, field, arg, value):
        """Test negative, fractional, NaN, infinite and non-numeric values fail."""
        with pytest.raises(TelemetryValidationError, match=f"{field} must be a non-negative integer"):
            self.record(**{arg: value})
        assert self.store.records == []

    def test_integer_fields_accept_zero_and_integral_floats(self):
        """Test boundary value 0 passes and 3.0 is stored as an int."""
        self.record(input_tokens=0, output_tokens=3.0, timestamp=0)

        stored = self.store.records[0]
        assert stored.input_tokens == 0
        assert stored.output_tokens == 3
        assert isinstance(stored.output_tokens, int)
        assert stored.timestamp == 0

    @pytest.mark.parametrize("value", [-0.1, math.nan, math.inf])
    def test_cost_rejects_invalid_values(self, value):
        with pytest.raises(TelemetryValidationError, match="estimatedCostUsd must be a non-negative number"):
            self.record(estimated_cost_usd=value)

    def test_cost_accepts_zero(self):
        self.record(estimated_cost_usd=0)
        assert self.store.records[0].estimated_cost_usd == 0.0

    @pytest.mark.parametrize("field, arg", [("runId", "run_id"), ("sessionKey", "session_key")])
    def test_optional_strings_length_limit(self, field, arg):
        with pytest.raises(TelemetryValidationError, match=f"{field} must be <= 200 characters"):
            self.record(**{arg: "r" * 201})

    def test_optional_string_length_checked_after_trim(self):
        self.record(run_id="  " + "r" * 200 + "  ")
        assert self.store.records[0].run_id == "r" * 200

    def test_validation_order_is_deterministic(self):
        """Test the first failing field in the fixed order is reported."""
        with pytest.raises(TelemetryValidationError) as exc_info:
            self.record(model="", input_tokens=-1, estimated_cost_usd=-1, run_id="r" * 300)
        assert str(exc_info.value) == "model must be a non-empty string"
        assert exc_info.value.field == "model"

        with pytest.raises(TelemetryValidationError) as exc_info:
            self.record(output_tokens=-1, estimated_cost_usd=-1)
        assert str(exc_info.value) == "outputTokens must be a non-negative integer"

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            self.record(agent="")


class TestNormalizeLimit:
    """Test listing limit normalization."""

    def test_default_limit(self):
        assert normalize_limit() == 50
        assert normalize_limit(None) == 50

    def test_caps_at_maximum(self):
        assert normalize_limit(500) == 200
        assert normalize_limit(200) == 200

    def test_accepts_integral_float(self):
        assert normalize_limit(10.0) == 10

    @pytest.mark.parametrize("limit", [0, -3])
    def test_rejects_below_one(self, limit):
        with pytest.raises(TelemetryValidationError, match="limit must be >= 1"):
            normalize_limit(limit)

    @pytest.mark.parametrize("limit", [2.5, math.nan, math.inf, "10"])
    def test_rejects_non_integer(self, limit):
        with pytest.raises(TelemetryValidationError, match="limit must be an integer"):
            normalize_limit(limit)


class TestListings:
    """Test per-task and per-run listings."""

    def test_list_by_task_returns_newest_rows_and_applies_limit(self):
        store = InMemoryTelemetryRepository([
            make_row(id="a", task_id="task-1", timestamp=1_000),
            make_row(id="b", task_id="task-1", timestamp=3_000),
            make_row(id="c", task_id="task-2", timestamp=2_000),
            make_row(id="d", task_id="task-1", timestamp=2_000),
        ])

        result = list_by_task(store, "task-1", limit=2)

        assert [row.id for row in result] == ["b", "d"]

    def test_list_by_run_reads_rows_in_descending_order(self):
        store = InMemoryTelemetryRepository([
            make_row(id="a", run_id="run-1", timestamp=100),
            make_row(id="b", run_id="run-2", timestamp=300),
            make_row(id="c", run_id="run-1", timestamp=200),
        ])

        result = list_by_run(store, "run-1", limit=10)

        assert [row.id for row in result] == ["c", "a"]

    def test_list_by_run_trims_run_id(self):
        store = InMemoryTelemetryRepository([make_row(id="a", run_id="run-1")])
        assert [row.id for row in list_by_run(store, "  run-1 ")] == ["a"]

    def test_list_by_run_validates_run_id(self):
        store = InMemoryTelemetryRepository()
        with pytest.raises(TelemetryValidationError, match="runId must be a non-empty string"):
            list_by_run(store, "  ")
        with pytest.raises(TelemetryValidationError, match="runId must be <= 200 characters"):
            list_by_run(store, "r" * 201)

    def test_list_by_task_rejects_bad_limit(self):
        store = InMemoryTelemetryRepository()
        with pytest.raises(TelemetryValidationError, match="limit must be >= 1"):
            list_by_task(store, "task-1", limit=0)
