"""
Tests for demo data seeding.
"""

import os
import tempfile

from agent_cost_telemetry.core.analytics import DAY_MS, TelemetryAnalytics
from agent_cost_telemetry.core.anomaly import AnomalyKind
from agent_cost_telemetry.demo.seed_demo_data import DEMO_TASKS, seed_demo_data
from agent_cost_telemetry.storage.repository import (
    InMemoryTelemetryRepository,
    SQLiteProjectResolver,
    SQLiteTelemetryRepository,
    StaticProjectResolver,
    initialize_schema,
)

NOW = 10 * DAY_MS + 12 * 60 * 60 * 1000


class TestSeedDemoData:
    """Test the demo seeder."""

    def test_inserts_two_runs_per_day_plus_spike(self):
        store = InMemoryTelemetryRepository()

        ids = seed_demo_data(store, now=lambda: NOW)

        assert len(ids) == 17
        assert len(set(ids)) == 17
        assert max(r.estimated_cost_usd for r in store.records) == 9.80

    def test_seeded_week_reports_spike(self):
        store = InMemoryTelemetryRepository()
        seed_demo_data(store, now=lambda: NOW)
        analytics = TelemetryAnalytics(store, StaticProjectResolver(DEMO_TASKS))

        report = analytics.get_anomaly_primitives(start_ms=3 * DAY_MS, end_ms=NOW)

        spikes = [a for a in report.anomalies if a.kind == AnomalyKind.SPIKE]
        assert len(spikes) == 1
        assert spikes[0].bucket_start == 10 * DAY_MS

    def test_assigns_projects_in_sqlite(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "demo.db")
            initialize_schema(db_path)
            resolver = SQLiteProjectResolver(db_path)

            seed_demo_data(SQLiteTelemetryRepository(db_path), resolver, now=lambda: NOW)

            assert resolver.resolve_projects(DEMO_TASKS) == DEMO_TASKS
