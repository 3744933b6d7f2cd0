"""
Agent cost telemetry.

Records per-run token and cost telemetry for AI agents and answers cost
analytics and anomaly queries over it.
"""

__version__ = "0.1.0"
