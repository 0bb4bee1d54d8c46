"""Object store handler implementing read/create/update via the provider."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from edge_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from edge_provisioner.core.state import ResourceState
    from edge_provisioner.engine.handlers import EngineContext
    from edge_provisioner.resources.object_store import ObjectStoreResource

logger = logging.getLogger(__name__)


class ObjectStoreHandler(ResourceHandler["ObjectStoreResource"]):
    """Handler for the bucket holding the site content."""

    def read(self, ctx: EngineContext, desired: ObjectStoreResource) -> dict[str, Any] | None:
        return ctx.provider.find_store(desired.id, hint=desired.bucket_name)

    def create(self, ctx: EngineContext, desired: ObjectStoreResource) -> dict[str, Any]:
        logger.debug("Creating object store %s (%s)", desired.id, desired.bucket_name)
        return ctx.provider.create_store(desired.id, desired.desired_properties())

    def update(
        self,
        ctx: EngineContext,
        desired: ObjectStoreResource,
        prior: ResourceState,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        name = prior.output("name")
        logger.debug("Updating object store %s: %s", desired.id, sorted(changes))
        return ctx.provider.update_store(name, changes)
