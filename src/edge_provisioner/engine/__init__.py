"""Reconciliation engine for edge resources."""

from edge_provisioner.engine.graph import DependencyGraph, build_dependency_graph
from edge_provisioner.engine.handlers import EngineContext, ResourceHandler
from edge_provisioner.engine.lock import RunLock
from edge_provisioner.engine.reconciler import ProgressCallback, Reconciler
from edge_provisioner.engine.references import KNOWN_AFTER_APPLY, resolve_references
from edge_provisioner.engine.registry import ResourceKindRegistration, ResourceKindRegistry
from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.engine.types import Action, Plan, ReconcileResult, ResourceChange

__all__ = [
    "KNOWN_AFTER_APPLY",
    "Action",
    "DependencyGraph",
    "EngineContext",
    "Plan",
    "ProgressCallback",
    "ReconcileResult",
    "Reconciler",
    "ResourceChange",
    "ResourceHandler",
    "ResourceKindRegistration",
    "ResourceKindRegistry",
    "RetryPolicy",
    "RunLock",
    "build_dependency_graph",
    "resolve_references",
]
