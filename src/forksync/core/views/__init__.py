"""Read-side views for status dashboards and audit."""

from .history import DEFAULT_LIMIT, HistoryRecorder
from .status import ForkStatus, HostStatus, StatusAggregator, StatusView

__all__ = [
    "DEFAULT_LIMIT",
    "ForkStatus",
    "HistoryRecorder",
    "HostStatus",
    "StatusAggregator",
    "StatusView",
]
