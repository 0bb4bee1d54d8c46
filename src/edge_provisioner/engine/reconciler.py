"""Dependency-ordered, idempotent reconciliation of edge resources."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Literal

from edge_provisioner.core.state import ResourceState
from edge_provisioner.engine.graph import build_dependency_graph
from edge_provisioner.engine.handlers import EngineContext
from edge_provisioner.engine.references import KNOWN_AFTER_APPLY, resolve_references
from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.engine.types import Action, Plan, ReconcileResult, ResourceChange
from edge_provisioner.errors import (
    ConfigurationError,
    ImmutablePropertyError,
    OperationCanceled,
    ResourceApplyError,
)
from edge_provisioner.resources.markers import CompareStrategy
from edge_provisioner.resources.validation import validate_descriptors

if TYPE_CHECKING:
    from collections.abc import Sequence

    from edge_provisioner.core.provider import EdgeProvider
    from edge_provisioner.engine.handlers import ResourceHandler
    from edge_provisioner.engine.registry import ResourceKindRegistry
    from edge_provisioner.publish.cancel import CancelToken
    from edge_provisioner.resources.base import Resource

ProgressCallback = Callable[[ResourceChange, Literal["start", "done", "unchanged"]], None]

logger = logging.getLogger(__name__)


def _values_differ(
    desired: Any,
    prior: Any,
    *,
    strategy: CompareStrategy | None = None,
) -> bool:
    """Check whether a desired value differs from the remote value.

    Comparison semantics depend on *strategy*:

    - ``strategy="set"``:
      - If both values are lists, they are compared as sets (order-insensitive).
      - Other types fall back to strict equality.
    - ``strategy="exact"``:
      - Values are compared with strict equality.
      - For dicts, extra or missing keys are treated as differences.
    - ``strategy=None`` or ``"partial"``:
      - For dict values, only keys present in *desired* are compared.
      - Extra keys present only remotely (provider-added defaults) are ignored.
      - Non-dict values use strict equality.
    """
    if strategy == "set":
        if isinstance(desired, list) and isinstance(prior, list):
            return set(desired) != set(prior)
        return desired != prior

    if strategy == "exact":
        return desired != prior

    if isinstance(desired, dict) and isinstance(prior, dict):
        return any(_values_differ(v, prior.get(k), strategy="partial") for k, v in desired.items())
    return desired != prior


class Reconciler:
    """Converge remote resources toward a set of descriptors.

    The remote is the only source of truth: every pass reads each resource
    through its handler, diffs it against the resolved descriptor and issues
    a create or update only when something differs.  Resources are processed
    one at a time in dependency order, so references always resolve against
    outputs observed earlier in the same pass.
    """

    def __init__(
        self,
        *,
        provider: EdgeProvider,
        registry: ResourceKindRegistry,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._retry = retry or RetryPolicy()

    def _ctx(self) -> EngineContext:
        return EngineContext(provider=self._provider, retry=self._retry)

    def _handler(self, resource: Resource) -> ResourceHandler[Any]:
        return self._registry.get(resource.kind).handler

    def _prepare(self, resources: Sequence[Resource]) -> tuple[dict[str, Resource], list[str]]:
        """Validate the descriptor set and return it by id with its apply order.

        Runs before any provider call.
        """
        validate_descriptors(resources)
        ctx = self._ctx()
        errors: list[str] = []
        for r in resources:
            errors.extend(self._handler(r).validate(ctx, r))
        if errors:
            raise ConfigurationError("\n".join(errors))

        order = build_dependency_graph(resources).topological_order()
        logger.debug("Resource order: %s", " -> ".join(order))
        return {r.id: r for r in resources}, order

    def _read(self, handler: ResourceHandler[Any], resolved: Resource) -> ResourceState:
        attrs = self._retry.call(
            lambda: handler.read(self._ctx(), resolved),
            description=f"read {resolved.id}",
        )
        return ResourceState.observed(resolved.id, resolved.kind, attrs)

    def _classify_change(
        self,
        resolved: Resource,
        handler: ResourceHandler[Any],
        state: ResourceState,
    ) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, or NOOP."""
        planned = handler.planned(resolved)
        if not state.exists:
            logger.debug("Classified %s as create", resolved.id)
            return ResourceChange(
                id=resolved.id,
                kind=resolved.kind,
                action=Action.CREATE,
                planned=planned,
            )

        prior = dict(state.remote_properties)
        strategies = handler.compare_strategies(resolved)
        diff = {
            k: {"from": prior.get(k), "to": v}
            for k, v in planned.items()
            if _values_differ(v, prior.get(k), strategy=strategies.get(k))
        }

        immutable = handler.immutable_properties(resolved) & diff.keys()
        if immutable:
            raise ImmutablePropertyError(resolved.id, immutable)

        action = Action.UPDATE if diff else Action.NOOP
        logger.debug("Classified %s as %s", resolved.id, action.value)
        return ResourceChange(
            id=resolved.id,
            kind=resolved.kind,
            action=action,
            planned=planned,
            prior=prior,
            diff=diff or None,
        )

    def plan(self, resources: Sequence[Resource]) -> Plan:
        """Compute the changes a reconcile would make, without mutating anything.

        Outputs of resources that do not exist yet resolve to
        ``(known after apply)``.
        """
        by_id, order = self._prepare(resources)
        states: dict[str, ResourceState] = {}
        changes: list[ResourceChange] = []

        for rid in order:
            resource = by_id[rid]
            handler = self._handler(resource)
            resolved = resolve_references(resource, states, placeholder=KNOWN_AFTER_APPLY)
            state = self._read(handler, resolved)
            changes.append(self._classify_change(resolved, handler, state))
            states[rid] = state

        plan = Plan(changes=changes)
        logger.info("Plan: %s", plan.summary())
        return plan

    def reconcile(
        self,
        resources: Sequence[Resource],
        *,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> ReconcileResult:
        """Bring every remote resource in line with its descriptor.

        Stops at the first failure.  A create or update failure is raised as
        ``ResourceApplyError`` naming the resources already converged and
        those never attempted; nothing already applied is rolled back.
        """
        by_id, order = self._prepare(resources)
        ctx = self._ctx()
        result = ReconcileResult(order=order)
        logger.info("Reconciling %d resources", len(order))

        for i, rid in enumerate(order):
            if cancel is not None and cancel.is_set():
                raise OperationCanceled(
                    f"Reconciliation canceled before {rid}; not attempted: {', '.join(order[i:])}"
                )

            resource = by_id[rid]
            handler = self._handler(resource)
            resolved = resolve_references(resource, result.states)
            state = self._read(handler, resolved)
            change = self._classify_change(resolved, handler, state)

            if change.action is Action.NOOP:
                result.states[rid] = state
                if progress:
                    progress(change, "unchanged")
                continue

            if progress:
                progress(change, "start")
            try:
                if change.action is Action.CREATE:
                    attrs = handler.create(ctx, resolved)
                else:
                    attrs = handler.update(ctx, resolved, state, change.changed_properties())
            except Exception as e:
                raise ResourceApplyError(
                    resource_id=rid,
                    cause=e,
                    applied=result.converged,
                    not_attempted=order[i + 1 :],
                ) from e

            result.states[rid] = ResourceState.observed(rid, resolved.kind, attrs)
            result.changes.append(change)
            logger.info("%s %s", change.action.value.capitalize(), rid)
            if progress:
                progress(change, "done")

        logger.info("Reconciled: %s", result.summary())
        return result
