"""Default resource kind registry factory."""

from __future__ import annotations

from edge_provisioner.engine.access_control_handler import OriginAccessControlHandler
from edge_provisioner.engine.access_policy_handler import AccessPolicyHandler
from edge_provisioner.engine.distribution_handler import DistributionHandler
from edge_provisioner.engine.object_store_handler import ObjectStoreHandler
from edge_provisioner.engine.registry import ResourceKindRegistry
from edge_provisioner.resources.access_control import OriginAccessControlResource
from edge_provisioner.resources.access_policy import AccessPolicyResource
from edge_provisioner.resources.distribution import DistributionResource
from edge_provisioner.resources.object_store import ObjectStoreResource


def default_registry() -> ResourceKindRegistry:
    """Create a fresh registry with all built-in resource kinds and handlers."""
    registry = ResourceKindRegistry()
    registry.register(ObjectStoreResource, ObjectStoreHandler())
    registry.register(OriginAccessControlResource, OriginAccessControlHandler())
    registry.register(DistributionResource, DistributionHandler())
    registry.register(AccessPolicyResource, AccessPolicyHandler())
    return registry
