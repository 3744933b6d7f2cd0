"""
SDK for agent cost telemetry.

Provides instrumented model clients that report usage automatically.
"""

from .openai_client import InstrumentedOpenAI

__all__ = ["InstrumentedOpenAI"]
