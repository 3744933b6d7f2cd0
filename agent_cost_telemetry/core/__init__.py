"""
Core modules for agent cost telemetry.

This package contains the validation gate, aggregation, anomaly detection
and the analytics facade.
"""
