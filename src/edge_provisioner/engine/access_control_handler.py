"""Origin access control handler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from edge_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from edge_provisioner.core.state import ResourceState
    from edge_provisioner.engine.handlers import EngineContext
    from edge_provisioner.resources.access_control import OriginAccessControlResource


class OriginAccessControlHandler(ResourceHandler["OriginAccessControlResource"]):
    def read(
        self, ctx: EngineContext, desired: OriginAccessControlResource
    ) -> dict[str, Any] | None:
        return ctx.provider.find_origin_access_control(desired.id, hint=desired.name)

    def create(self, ctx: EngineContext, desired: OriginAccessControlResource) -> dict[str, Any]:
        return ctx.provider.create_origin_access_control(desired.id, desired.desired_properties())

    def update(
        self,
        ctx: EngineContext,
        desired: OriginAccessControlResource,
        prior: ResourceState,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        _ = desired
        return ctx.provider.update_origin_access_control(prior.output("id"), changes)
