"""
Server Monitor

Tracks the lifecycle of game servers reported by a polled API:
active while seen, closed after repeated absence, deleted after retention.
"""
from .core.config import MonitorConfig
from .core.types import (
    AttributeRefresh,
    CycleOutcome,
    CycleReport,
    Delete,
    FetchResult,
    Insert,
    LiveServer,
    ServerStatus,
    TrackedServer,
    UpdateFields,
)
from .reconciler.engine import ReconciliationPolicy, reconcile
from .reconciler.cycle import ReconciliationCycle

__all__ = [
    "MonitorConfig",
    "AttributeRefresh",
    "CycleOutcome",
    "CycleReport",
    "Delete",
    "FetchResult",
    "Insert",
    "LiveServer",
    "ServerStatus",
    "TrackedServer",
    "UpdateFields",
    "ReconciliationPolicy",
    "reconcile",
    "ReconciliationCycle",
]
