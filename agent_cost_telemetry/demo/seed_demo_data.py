"""
Demo telemetry for trying the analytics commands.

Seeds a week of steady daily spend followed by a spike on the last day.
"""

from typing import Callable, List, Optional

from agent_cost_telemetry.core.analytics import DAY_MS
from agent_cost_telemetry.core.identity import StaticIdentityProvider
from agent_cost_telemetry.core.validation import now_ms, record_telemetry
from agent_cost_telemetry.storage.repository import RowSource, SQLiteProjectResolver

DEMO_TASKS = {
    "task-landing-page": "website",
    "task-api-auth": "backend",
    "task-ci-flakes": "backend",
}

# (task, agent, model, input tokens, output tokens, cost) per day
_DAILY_RUNS = [
    ("task-landing-page", "forge", "gpt-4o-mini", 12000, 3000, 0.41),
    ("task-api-auth", "sentinel", "gpt-4o", 8000, 2500, 0.57),
]
_SPIKE_RUN = ("task-ci-flakes", "forge", "gpt-4o", 240000, 60000, 9.80)


def seed_demo_data(
    row_source: RowSource,
    resolver: Optional[SQLiteProjectResolver] = None,
    days: int = 7,
    now: Callable[[], int] = now_ms,
) -> List[str]:
    """Insert demo rows and return their ids.

    The last day carries an extra expensive run, so ``anomalies`` over the
    seeded window reports a spike.
    """
    identity = StaticIdentityProvider("demo")
    if resolver is not None:
        for task_id, project in DEMO_TASKS.items():
            resolver.assign(task_id, project)

    end = now()
    ids = []
    for day in range(days, -1, -1):
        day_start = end - day * DAY_MS
        runs = list(_DAILY_RUNS)
        if day == 0:
            runs.append(_SPIKE_RUN)
        for offset, (task_id, agent, model, input_tokens, output_tokens, cost) in enumerate(runs):
            result = record_telemetry(
                identity,
                row_source,
                task_id=task_id,
                agent=agent,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                estimated_cost_usd=cost + (day % 3) * 0.05,
                timestamp=max(day_start - offset * 1000, 0),
                run_id=f"demo-run-{day}-{offset}",
            )
            ids.append(result.id)
    return ids
