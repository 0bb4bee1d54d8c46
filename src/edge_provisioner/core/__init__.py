"""Core infrastructure components: provider boundary and observed state."""

from edge_provisioner.core.aws import AWSProvider
from edge_provisioner.core.provider import OWNER_TAG, EdgeProvider, RemoteObject
from edge_provisioner.core.state import ResourceState, compute_attributes_hash

__all__ = [
    "OWNER_TAG",
    "AWSProvider",
    "EdgeProvider",
    "RemoteObject",
    "ResourceState",
    "compute_attributes_hash",
]
