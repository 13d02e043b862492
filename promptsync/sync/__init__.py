"""
Vault synchronization: reconciliation, orchestration and change watching.
"""

from .events import EventType, VaultChangeEvent, SyncTrigger, SyncCompletedEvent, VAULT_CHANGED_EVENT
from .reconciler import ReconciliationPlan, Reconciler, plan_reconciliation, apply_plan
from .watcher import VaultWatcher, VaultEventHandler
from .engine import SyncOrchestrator, SyncMetrics

__all__ = [
    "EventType",
    "VaultChangeEvent",
    "SyncTrigger",
    "SyncCompletedEvent",
    "VAULT_CHANGED_EVENT",
    "ReconciliationPlan",
    "Reconciler",
    "plan_reconciliation",
    "apply_plan",
    "VaultWatcher",
    "VaultEventHandler",
    "SyncOrchestrator",
    "SyncMetrics",
]
