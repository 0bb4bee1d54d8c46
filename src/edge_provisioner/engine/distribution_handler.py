"""CDN distribution handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from edge_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from edge_provisioner.core.state import ResourceState
    from edge_provisioner.engine.handlers import EngineContext
    from edge_provisioner.resources.distribution import DistributionResource

logger = logging.getLogger(__name__)


class DistributionHandler(ResourceHandler["DistributionResource"]):
    """Handler for the edge distribution fronting the object store."""

    def validate(self, ctx: EngineContext, desired: DistributionResource) -> list[str]:
        _ = ctx
        errors: list[str] = []
        if desired.default_root_object.startswith("/"):
            errors.append(
                f"{desired.id}: default_root_object must be an object key without a leading '/'"
            )
        codes = [e.error_code for e in desired.error_responses]
        if len(codes) != len(set(codes)):
            errors.append(f"{desired.id}: error_responses lists an error code more than once")
        return errors

    def read(self, ctx: EngineContext, desired: DistributionResource) -> dict[str, Any] | None:
        return ctx.provider.find_distribution(desired.id)

    def create(self, ctx: EngineContext, desired: DistributionResource) -> dict[str, Any]:
        return ctx.provider.create_distribution(desired.id, desired.desired_properties())

    def update(
        self,
        ctx: EngineContext,
        desired: DistributionResource,
        prior: ResourceState,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        distribution_id = prior.output("id")
        logger.debug(
            "Updating distribution %s (%s): %s", desired.id, distribution_id, sorted(changes)
        )
        return ctx.provider.update_distribution(distribution_id, changes)
