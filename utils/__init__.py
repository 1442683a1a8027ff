"""
Utility modules: command/event types and latency metrics.
"""

from .events import Transition, RawKeyEvent, ErrorEvent
from .metrics import timer, record_timing, get_stats, log_latency, clear_metrics

__all__ = [
    "Transition",
    "RawKeyEvent",
    "ErrorEvent",
    "timer",
    "record_timing",
    "get_stats",
    "log_latency",
    "clear_metrics"
]
