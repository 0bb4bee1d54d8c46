"""Resource descriptor definitions."""

from edge_provisioner.resources.access_control import OriginAccessControlResource
from edge_provisioner.resources.access_policy import AccessPolicyResource
from edge_provisioner.resources.base import Resource
from edge_provisioner.resources.distribution import DistributionResource, ErrorResponse
from edge_provisioner.resources.object_store import ObjectStoreResource
from edge_provisioner.resources.validation import descriptor_errors, validate_descriptors

__all__ = [
    "AccessPolicyResource",
    "DistributionResource",
    "ErrorResponse",
    "ObjectStoreResource",
    "OriginAccessControlResource",
    "Resource",
    "descriptor_errors",
    "validate_descriptors",
]
