"""Bucket access policy handler.

A policy has no identity of its own: it lives on the store it protects, so it
is read and written through the store name and carries no ownership marker.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from edge_provisioner.engine.handlers import ResourceHandler
from edge_provisioner.engine.references import KNOWN_AFTER_APPLY

if TYPE_CHECKING:
    from edge_provisioner.core.state import ResourceState
    from edge_provisioner.engine.handlers import EngineContext
    from edge_provisioner.resources.access_policy import AccessPolicyResource
    from edge_provisioner.resources.markers import CompareStrategy


class AccessPolicyHandler(ResourceHandler["AccessPolicyResource"]):
    def validate(self, ctx: EngineContext, desired: AccessPolicyResource) -> list[str]:
        _ = ctx
        return [
            f"{desired.id}: statement {i} must define Effect and Action"
            for i, statement in enumerate(desired.statements)
            if "Effect" not in statement or "Action" not in statement
        ]

    def planned(self, desired: AccessPolicyResource) -> dict[str, Any]:
        return {"store": desired.store, "policy": desired.render_policy()}

    def compare_strategies(self, desired: AccessPolicyResource) -> dict[str, CompareStrategy]:
        _ = desired
        return {"policy": "exact"}

    def read(self, ctx: EngineContext, desired: AccessPolicyResource) -> dict[str, Any] | None:
        if desired.store == KNOWN_AFTER_APPLY:
            return None
        policy = ctx.provider.get_policy(desired.store)
        if policy is None:
            return None
        return {"store": desired.store, "policy": policy}

    def _write(self, ctx: EngineContext, desired: AccessPolicyResource) -> dict[str, Any]:
        policy = desired.render_policy()
        ctx.provider.set_policy(desired.store, policy)
        return {"store": desired.store, "policy": policy}

    def create(self, ctx: EngineContext, desired: AccessPolicyResource) -> dict[str, Any]:
        return self._write(ctx, desired)

    def update(
        self,
        ctx: EngineContext,
        desired: AccessPolicyResource,
        prior: ResourceState,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        _ = prior, changes
        return self._write(ctx, desired)
