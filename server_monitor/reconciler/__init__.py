"""
Server Monitor: Reconciler Package

Presence-tracking engine and the cycle that drives it.
"""
from .engine import ReconciliationPolicy, reconcile
from .cycle import ReconciliationCycle

__all__ = [
    "ReconciliationPolicy",
    "reconcile",
    "ReconciliationCycle",
]
