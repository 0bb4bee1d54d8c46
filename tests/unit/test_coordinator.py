from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest

from edge_provisioner.config.registry import default_registry
from edge_provisioner.engine.reconciler import Reconciler
from edge_provisioner.errors import ProviderError
from edge_provisioner.publish.cancel import CancelToken
from edge_provisioner.publish.coordinator import DeploymentCoordinator
from edge_provisioner.publish.invalidator import CacheInvalidator
from edge_provisioner.publish.report import RunReport, Stage
from edge_provisioner.publish.synchronizer import ContentSynchronizer

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from edge_provisioner.engine.reconciler import ProgressCallback
    from edge_provisioner.engine.retry import RetryPolicy
    from edge_provisioner.engine.types import ResourceChange
    from edge_provisioner.resources.base import Resource
    from tests.unit.conftest import FakeProvider

    MakeCoordinator = Callable[..., DeploymentCoordinator]

BUCKET = "example-site-content"
SITE_PATHS = ["/assets/app.js", "/error.html", "/index.html"]


@pytest.fixture
def transitions() -> list[tuple[Stage, Stage]]:
    return []


@pytest.fixture
def make_coordinator(
    fake_provider: FakeProvider,
    no_sleep_retry: RetryPolicy,
    site_dir: Path,
    transitions: list[tuple[Stage, Stage]],
) -> MakeCoordinator:
    def _make(
        *, progress: ProgressCallback | None = None, **invalidator_kwargs: object
    ) -> DeploymentCoordinator:
        return DeploymentCoordinator(
            reconciler=Reconciler(
                provider=fake_provider, registry=default_registry(), retry=no_sleep_retry
            ),
            synchronizer=ContentSynchronizer(fake_provider, workers=2, retry=no_sleep_retry),
            invalidator=CacheInvalidator(
                fake_provider, retry=no_sleep_retry, **invalidator_kwargs  # type: ignore[arg-type]
            ),
            store_id="site-store",
            distribution_id="site-cdn",
            content_root=site_dir,
            on_transition=lambda old, new: transitions.append((old, new)),
            progress=progress,
        )

    return _make


def _stages(transitions: list[tuple[Stage, Stage]]) -> list[Stage]:
    return [new for _, new in transitions]


def test_fresh_deploy_completes(
    make_coordinator: MakeCoordinator,
    fake_provider: FakeProvider,
    resources: list[Resource],
    transitions: list[tuple[Stage, Stage]],
) -> None:
    coordinator = make_coordinator()

    report = coordinator.run(resources)

    assert report.ok
    assert report.status is Stage.COMPLETE
    assert coordinator.state is Stage.COMPLETE
    assert _stages(transitions) == [
        Stage.RECONCILING,
        Stage.SYNCING,
        Stage.INVALIDATING,
        Stage.COMPLETE,
    ]
    assert report.resources_applied == ["site-store", "site-oac", "site-cdn", "site-policy"]
    assert report.store == BUCKET
    assert report.distribution_id is not None
    assert report.domain_name == f"{report.distribution_id.lower()}.cloudfront.net"
    assert report.objects_uploaded == ["assets/app.js", "error.html", "index.html"]
    assert report.invalidation_paths == SITE_PATHS
    (inv_id,) = report.invalidation_ids
    assert fake_provider.invalidations[inv_id]["paths"] == SITE_PATHS
    assert report.message == "Deployed 3 uploads and 0 deletions; 3 paths invalidated"
    assert report.finished_at is not None


def test_redeploy_without_changes_invalidates_nothing(
    make_coordinator: MakeCoordinator, fake_provider: FakeProvider, resources: list[Resource]
) -> None:
    make_coordinator().run(resources)
    fake_provider.calls.clear()

    report = make_coordinator().run(resources)

    assert report.ok
    assert fake_provider.calls == []
    assert report.resources_applied == []
    assert report.invalidation_paths == []
    assert report.invalidation_ids == []


def test_only_changed_paths_are_invalidated(
    make_coordinator: MakeCoordinator,
    fake_provider: FakeProvider,
    resources: list[Resource],
    site_dir: Path,
) -> None:
    make_coordinator().run(resources)
    (site_dir / "index.html").write_text("<h1>v2</h1>\n")
    (site_dir / "error.html").unlink()

    report = make_coordinator().run(resources)

    assert report.ok
    assert report.objects_uploaded == ["index.html"]
    assert report.objects_deleted == ["error.html"]
    assert report.invalidation_paths == ["/error.html", "/index.html"]


def test_mode_all_invalidates_wildcard(
    make_coordinator: MakeCoordinator, resources: list[Resource]
) -> None:
    report = make_coordinator(mode="all").run(resources)
    assert report.invalidation_paths == ["/*"]


def test_invalidation_failure_leaves_content_live(
    make_coordinator: MakeCoordinator,
    fake_provider: FakeProvider,
    resources: list[Resource],
    transitions: list[tuple[Stage, Stage]],
) -> None:
    fake_provider.fail("create_invalidation", ProviderError("cloudfront", "AccessDenied"))

    report = make_coordinator().run(resources)

    assert not report.ok
    assert report.status is Stage.FAILED
    assert report.failed_stage is Stage.INVALIDATING
    assert report.stage_reached is Stage.INVALIDATING
    assert report.cause_type == "InvalidationError"
    assert report.message == (
        "Content is live at the origin but the edge may still serve stale copies of: "
        + ", ".join(SITE_PATHS)
    )
    assert sorted(fake_provider.objects[BUCKET]) == ["assets/app.js", "error.html", "index.html"]
    assert _stages(transitions)[-1] is Stage.FAILED


def test_sync_failure_skips_invalidation(
    make_coordinator: MakeCoordinator, fake_provider: FakeProvider, resources: list[Resource]
) -> None:
    fake_provider.fail(
        "put_object", ProviderError("s3.put_object", "AccessDenied"), key="index.html", times=10
    )

    report = make_coordinator().run(resources)

    assert report.failed_stage is Stage.SYNCING
    assert report.cause_type == "SyncIncompleteError"
    assert list(report.objects_failed) == ["index.html"]
    assert report.objects_uploaded == ["assets/app.js", "error.html"]
    assert report.invalidation_paths == ["/assets/app.js", "/error.html"]
    assert report.invalidation_ids == []
    assert not any(method == "create_invalidation" for method, _ in fake_provider.calls)
    assert report.stage_reached is Stage.SYNCING
    assert report.stale_paths == ["/assets/app.js", "/error.html"]
    assert report.retry_command == "edge-provisioner invalidate /assets/app.js /error.html"
    assert "the edge was not invalidated" in report.message
    assert "Retry with: edge-provisioner invalidate /assets/app.js /error.html" in report.message


def test_rerun_after_partial_sync_does_not_invalidate_earlier_uploads(
    make_coordinator: MakeCoordinator,
    fake_provider: FakeProvider,
    no_sleep_retry: RetryPolicy,
    resources: list[Resource],
    site_dir: Path,
) -> None:
    assert make_coordinator().run(resources).ok
    (site_dir / "index.html").write_text("<h1>hello again</h1>\n")
    (site_dir / "error.html").write_text("<h1>still not found</h1>\n")
    fake_provider.fail(
        "put_object", ProviderError("s3.put_object", "SlowDown"), key="index.html", times=3
    )

    partial = make_coordinator().run(resources)

    assert partial.failed_stage is Stage.SYNCING
    assert partial.objects_uploaded == ["error.html"]
    assert partial.invalidation_ids == []
    assert partial.stale_paths == ["/error.html"]
    assert partial.retry_command == "edge-provisioner invalidate /error.html"

    rerun = make_coordinator().run(resources)

    assert rerun.ok
    assert rerun.invalidation_paths == ["/index.html"]
    assert rerun.stale_paths == []

    assert partial.distribution_id is not None
    cleared = CacheInvalidator(fake_provider, retry=no_sleep_retry).invalidate_paths(
        partial.distribution_id, partial.stale_paths
    )
    assert cleared.completed
    assert fake_provider.invalidations[cleared.invalidation_ids[0]]["paths"] == ["/error.html"]


def test_cancel_during_sync_finishes_in_flight_uploads(
    monkeypatch: pytest.MonkeyPatch,
    make_coordinator: MakeCoordinator,
    fake_provider: FakeProvider,
    resources: list[Resource],
) -> None:
    token = CancelToken()
    put_object = fake_provider.put_object

    def put_then_cancel(*args: Any, **kwargs: Any) -> None:
        put_object(*args, **kwargs)
        token.cancel("interrupted")

    monkeypatch.setattr(fake_provider, "put_object", put_then_cancel)

    report = make_coordinator().run(resources, cancel=token)

    assert report.failed_stage is Stage.SYNCING
    assert report.cause_type == "OperationCanceled"
    assert report.objects_uploaded
    assert report.objects_skipped
    assert sorted([*report.objects_uploaded, *report.objects_skipped]) == [
        "assets/app.js",
        "error.html",
        "index.html",
    ]
    assert sorted(fake_provider.objects[BUCKET]) == report.objects_uploaded
    assert report.stale_paths == ["/" + key for key in report.objects_uploaded]
    assert not any(method == "create_invalidation" for method, _ in fake_provider.calls)


def test_reconcile_failure_touches_no_content(
    make_coordinator: MakeCoordinator,
    fake_provider: FakeProvider,
    resources: list[Resource],
    transitions: list[tuple[Stage, Stage]],
) -> None:
    fake_provider.fail("create_distribution", ProviderError("cloudfront", "InvalidArgument"))

    report = make_coordinator().run(resources)

    assert report.failed_stage is Stage.RECONCILING
    assert report.cause_type == "ResourceApplyError"
    assert report.resources_applied == ["site-store", "site-oac"]
    assert report.resources_not_attempted == ["site-cdn", "site-policy"]
    assert report.objects_uploaded == []
    assert not any(method == "put_object" for method, _ in fake_provider.calls)
    assert _stages(transitions) == [Stage.RECONCILING, Stage.FAILED]


def test_configuration_error_reports_every_resource_pending(
    make_coordinator: MakeCoordinator, fake_provider: FakeProvider, resources: list[Resource]
) -> None:
    bad = [*resources, resources[-1]]

    report = make_coordinator().run(bad)

    assert report.failed_stage is Stage.RECONCILING
    assert report.cause_type == "ConfigurationError"
    assert fake_provider.reads == []


def test_cancel_before_sync(
    make_coordinator: MakeCoordinator, fake_provider: FakeProvider, resources: list[Resource]
) -> None:
    token = CancelToken()

    def progress(change: ResourceChange, event: str) -> None:
        if change.id == "site-policy" and event == "done":
            token.cancel("interrupted")

    coordinator = make_coordinator(progress=progress)

    report = coordinator.run(resources, cancel=token)

    assert report.failed_stage is Stage.SYNCING
    assert report.cause_type == "OperationCanceled"
    assert report.stage_reached is Stage.RECONCILING
    assert not any(method == "put_object" for method, _ in fake_provider.calls)


def test_coordinator_runs_once(
    make_coordinator: MakeCoordinator,
    resources: list[Resource],
) -> None:
    coordinator = make_coordinator()
    coordinator.run(resources)

    with pytest.raises(RuntimeError, match="runs once"):
        coordinator.run(resources)


def test_report_serializes(
    tmp_path: Path, make_coordinator: MakeCoordinator, resources: list[Resource]
) -> None:
    report = make_coordinator().run(resources)
    path = tmp_path / "reports" / "run.json"

    report.save(path)

    data = json.loads(path.read_text())
    assert data["status"] == "Complete"
    assert data["invalidation_paths"] == SITE_PATHS
    assert RunReport.model_validate(data).status is Stage.COMPLETE
