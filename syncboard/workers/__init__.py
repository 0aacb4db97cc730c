"""Background worker exports."""

from .periodic import CorrelationWorker, PeriodicWorker, ProgressWorker, TelemetryWorker

__all__ = [
    "CorrelationWorker",
    "PeriodicWorker",
    "ProgressWorker",
    "TelemetryWorker",
]
