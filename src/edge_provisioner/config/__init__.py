"""YAML configuration loading and convenience plan/reconcile/deploy API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from edge_provisioner.config.loader import load_config
from edge_provisioner.config.registry import default_registry
from edge_provisioner.config.schema import Config, ProviderConfig
from edge_provisioner.core.aws import AWSProvider
from edge_provisioner.engine.reconciler import Reconciler
from edge_provisioner.errors import ConfigurationError, ProviderError
from edge_provisioner.publish.coordinator import DeploymentCoordinator
from edge_provisioner.publish.invalidator import CacheInvalidator
from edge_provisioner.publish.synchronizer import ContentSynchronizer

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from edge_provisioner.core.provider import EdgeProvider
    from edge_provisioner.engine.reconciler import ProgressCallback
    from edge_provisioner.engine.types import Plan, ReconcileResult
    from edge_provisioner.publish.cancel import CancelToken
    from edge_provisioner.publish.coordinator import TransitionCallback
    from edge_provisioner.publish.invalidator import InvalidationResult
    from edge_provisioner.publish.plan import PublishPlan
    from edge_provisioner.publish.report import RunReport

__all__ = [
    "Config",
    "ProviderConfig",
    "deploy",
    "invalidate",
    "load",
    "load_config",
    "plan",
    "reconcile",
    "sync_plan",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def provider_from_config(config: Config) -> AWSProvider:
    return AWSProvider(
        region=config.provider.region,
        profile=config.provider.profile,
        endpoint_url=config.provider.endpoint_url,
    )


def _reconciler_from_config(config: Config, provider: EdgeProvider) -> Reconciler:
    """Build a ``Reconciler`` from a ``Config`` instance."""
    return Reconciler(
        provider=provider,
        registry=default_registry(),
        retry=config.retry.policy(),
    )


def _synchronizer_from_config(config: Config, provider: EdgeProvider) -> ContentSynchronizer:
    return ContentSynchronizer(
        provider,
        workers=config.content.workers,
        retry=config.retry.policy(),
        exclude=config.content.exclude,
        cache_control=config.content.cache_control,
        delete=config.content.delete,
    )


def _invalidator_from_config(config: Config, provider: EdgeProvider) -> CacheInvalidator:
    inv = config.invalidation
    return CacheInvalidator(
        provider,
        mode=inv.mode,
        batch_size=inv.batch_size,
        workers=inv.workers,
        include_directory_indexes=inv.include_directory_indexes,
        wait=inv.wait,
        poll_interval=inv.poll_interval,
        timeout=inv.timeout,
        retry=config.retry.policy(),
    )


def _deploy_targets(config: Config) -> tuple[str, str]:
    store, distribution = config.deploy.store, config.deploy.distribution
    if store is None or distribution is None:
        raise ConfigurationError(
            "Deploying requires one ObjectStore and one CDNDistribution (see deploy: in config)"
        )
    return store, distribution


def plan(config: Config, *, provider: EdgeProvider | None = None) -> Plan:
    """Plan infrastructure changes for the given configuration."""
    provider = provider or provider_from_config(config)
    return _reconciler_from_config(config, provider).plan(config.resources)


def reconcile(
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
    provider: EdgeProvider | None = None,
) -> ReconcileResult:
    """Reconcile infrastructure toward the configuration."""
    provider = provider or provider_from_config(config)
    reconciler = _reconciler_from_config(config, provider)
    return reconciler.reconcile(config.resources, progress=progress, cancel=cancel)


def sync_plan(config: Config, *, provider: EdgeProvider | None = None) -> PublishPlan:
    """Compute the content publish plan against the configured store (read-only)."""
    store_id, _ = _deploy_targets(config)
    store = config.resource(store_id)
    bucket = getattr(store, "bucket_name", None)
    if bucket is None:
        raise ConfigurationError(f"deploy.store '{store_id}' is not an ObjectStore")
    provider = provider or provider_from_config(config)
    synchronizer = _synchronizer_from_config(config, provider)
    return synchronizer.plan(config.content_root, bucket, prefix=config.content.prefix)


def deploy(
    config: Config,
    *,
    on_transition: TransitionCallback | None = None,
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
    provider: EdgeProvider | None = None,
) -> RunReport:
    """Run the full pipeline: reconcile, sync content, invalidate the edge."""
    store_id, distribution_id = _deploy_targets(config)
    provider = provider or provider_from_config(config)
    coordinator = DeploymentCoordinator(
        reconciler=_reconciler_from_config(config, provider),
        synchronizer=_synchronizer_from_config(config, provider),
        invalidator=_invalidator_from_config(config, provider),
        store_id=store_id,
        distribution_id=distribution_id,
        content_root=config.content_root,
        prefix=config.content.prefix,
        on_transition=on_transition,
        progress=progress,
    )
    return coordinator.run(config.resources, cancel=cancel)


def invalidate(
    config: Config,
    paths: Sequence[str],
    *,
    cancel: CancelToken | None = None,
    provider: EdgeProvider | None = None,
) -> InvalidationResult:
    """Invalidate *paths* on the configured distribution (manual retry).

    ``invalidation.mode`` does not apply here: exactly *paths* are sent.
    """
    _, distribution_id = _deploy_targets(config)
    provider = provider or provider_from_config(config)
    found = provider.find_distribution(distribution_id)
    if found is None:
        raise ProviderError(
            "find_distribution", f"distribution '{distribution_id}' does not exist; run apply"
        )
    normalized = [p if p.startswith("/") else f"/{p}" for p in paths]
    invalidator = _invalidator_from_config(config, provider)
    return invalidator.invalidate_paths(found["id"], normalized, cancel=cancel)
