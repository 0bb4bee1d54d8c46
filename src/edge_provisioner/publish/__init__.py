"""Publish pipeline: content sync, cache invalidation and their coordination."""

from edge_provisioner.publish.cancel import CancelToken
from edge_provisioner.publish.coordinator import DeploymentCoordinator, TransitionCallback
from edge_provisioner.publish.invalidator import (
    CacheInvalidator,
    InvalidationResult,
    batched,
    object_paths,
)
from edge_provisioner.publish.manifest import (
    LocalObject,
    build_local_manifest,
    build_remote_manifest,
    file_fingerprint,
)
from edge_provisioner.publish.plan import PublishPlan, build_publish_plan
from edge_provisioner.publish.report import RunReport, Stage
from edge_provisioner.publish.synchronizer import ContentSynchronizer, SyncResult

__all__ = [
    "CacheInvalidator",
    "CancelToken",
    "ContentSynchronizer",
    "DeploymentCoordinator",
    "InvalidationResult",
    "LocalObject",
    "PublishPlan",
    "RunReport",
    "Stage",
    "SyncResult",
    "TransitionCallback",
    "batched",
    "build_local_manifest",
    "build_publish_plan",
    "build_remote_manifest",
    "file_fingerprint",
    "object_paths",
]
