"""Deployment coordinator: reconcile, then sync, then invalidate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from edge_provisioner.engine.graph import build_dependency_graph
from edge_provisioner.errors import (
    EdgeError,
    InvalidationError,
    OperationCanceled,
    ResourceApplyError,
    SyncIncompleteError,
)
from edge_provisioner.publish.report import RunReport, Stage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from edge_provisioner.engine.reconciler import ProgressCallback, Reconciler
    from edge_provisioner.engine.types import ReconcileResult, ResourceChange
    from edge_provisioner.publish.cancel import CancelToken
    from edge_provisioner.publish.invalidator import CacheInvalidator
    from edge_provisioner.publish.synchronizer import ContentSynchronizer, SyncResult
    from edge_provisioner.resources.base import Resource

TransitionCallback = Callable[[Stage, Stage], None]

logger = logging.getLogger(__name__)

_TERMINAL = frozenset({Stage.COMPLETE, Stage.FAILED})


class _Failed(Exception):
    def __init__(self, stage: Stage, cause: BaseException, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause
        self.message = message


class DeploymentCoordinator:
    """Sequence the reconciler, the content synchronizer and the cache invalidator.

    The pipeline is ``Idle -> Reconciling -> Syncing -> Invalidating ->
    Complete``; any failure moves it to ``Failed`` and stops it there.
    Invalidation starts only after the synchronizer has returned and covers
    only the keys it actually transferred, so the edge is never told to
    refetch a path whose new content is not yet at the origin.

    ``run`` never raises for pipeline failures; the returned ``RunReport``
    carries the failed stage, its cause and the progress made so far.
    """

    def __init__(
        self,
        *,
        reconciler: Reconciler,
        synchronizer: ContentSynchronizer,
        invalidator: CacheInvalidator,
        store_id: str,
        distribution_id: str,
        content_root: Path,
        prefix: str = "",
        on_transition: TransitionCallback | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._synchronizer = synchronizer
        self._invalidator = invalidator
        self._store_id = store_id
        self._distribution_id = distribution_id
        self._content_root = Path(content_root)
        self._prefix = prefix
        self._on_transition = on_transition
        self._progress = progress
        self._state = Stage.IDLE

    @property
    def state(self) -> Stage:
        return self._state

    def _transition(self, report: RunReport, new: Stage) -> None:
        old = self._state
        if old in _TERMINAL:
            raise RuntimeError(f"Cannot leave terminal state {old.value}")
        self._state = new
        if new is not Stage.FAILED:
            report.stage_reached = new
        report.status = new
        logger.info("Deployment: %s -> %s", old.value, new.value)
        if self._on_transition is not None:
            self._on_transition(old, new)

    @staticmethod
    def _check_cancel(cancel: CancelToken | None, stage: Stage) -> None:
        if cancel is not None and cancel.is_set():
            raise _Failed(
                stage,
                OperationCanceled(cancel.reason),
                f"Deployment canceled before {stage.value.lower()}: {cancel.reason}",
            )

    def run(
        self,
        resources: Sequence[Resource],
        *,
        cancel: CancelToken | None = None,
    ) -> RunReport:
        if self._state is not Stage.IDLE:
            raise RuntimeError("A coordinator runs once; create a new one per deployment")

        report = RunReport()
        try:
            reconciled = self._reconcile(report, resources, cancel)
            sync_result = self._sync(report, reconciled, cancel)
            self._invalidate(report, sync_result, cancel)
        except _Failed as failed:
            report.failed_stage = failed.stage
            report.cause = str(failed.cause)
            report.cause_type = type(failed.cause).__name__
            report.message = failed.message
            self._transition(report, Stage.FAILED)
            logger.error("%s", failed.message)
        else:
            self._transition(report, Stage.COMPLETE)
            report.message = (
                f"Deployed {len(report.objects_uploaded)} uploads and "
                f"{len(report.objects_deleted)} deletions; "
                f"{len(report.invalidation_paths)} paths invalidated"
            )
        report.finished_at = datetime.now(UTC)
        return report

    def _reconcile(
        self,
        report: RunReport,
        resources: Sequence[Resource],
        cancel: CancelToken | None,
    ) -> ReconcileResult:
        self._transition(report, Stage.RECONCILING)
        converged: list[str] = []

        def track(change: ResourceChange, event: Literal["start", "done", "unchanged"]) -> None:
            if event == "done":
                report.resources_applied.append(change.id)
            if event in ("done", "unchanged"):
                converged.append(change.id)
            if self._progress is not None:
                self._progress(change, event)

        try:
            return self._reconciler.reconcile(resources, progress=track, cancel=cancel)
        except ResourceApplyError as e:
            report.resources_not_attempted = [e.resource_id, *e.not_attempted]
            raise _Failed(
                Stage.RECONCILING, e, f"Infrastructure update failed at {e.resource_id}: {e.cause}"
            ) from e
        except EdgeError as e:
            report.resources_not_attempted = self._pending(resources, converged)
            raise _Failed(
                Stage.RECONCILING, e, f"Infrastructure update failed; content untouched: {e}"
            ) from e

    @staticmethod
    def _pending(resources: Sequence[Resource], converged: list[str]) -> list[str]:
        try:
            order = build_dependency_graph(resources).topological_order()
        except EdgeError:
            order = [r.id for r in resources]
        return [rid for rid in order if rid not in converged]

    def _targets(self, report: RunReport, reconciled: ReconcileResult) -> tuple[str, str]:
        store_state = reconciled.states.get(self._store_id)
        dist_state = reconciled.states.get(self._distribution_id)
        store = store_state.output("name") if store_state is not None else None
        distribution = dist_state.output("id") if dist_state is not None else None
        if not store or not distribution:
            missing = self._store_id if not store else self._distribution_id
            raise _Failed(
                Stage.RECONCILING,
                EdgeError(f"Reconciled state has no outputs for '{missing}'"),
                f"Deployment target '{missing}' was not reconciled",
            )
        report.store = store
        report.distribution_id = distribution
        report.domain_name = dist_state.output("domain_name")
        return store, distribution

    def _sync(
        self,
        report: RunReport,
        reconciled: ReconcileResult,
        cancel: CancelToken | None,
    ) -> SyncResult:
        store, _ = self._targets(report, reconciled)
        self._check_cancel(cancel, Stage.SYNCING)
        self._transition(report, Stage.SYNCING)
        try:
            result = self._synchronizer.sync(
                self._content_root, store, prefix=self._prefix, cancel=cancel
            )
        except (SyncIncompleteError, OperationCanceled) as e:
            if e.result is not None:
                self._record_sync(report, e.result)
                live = self._invalidator.paths_for(e.result.invalidation_paths)
                report.invalidation_paths = live
                report.stale_paths = live
            failed = ", ".join(sorted(report.objects_failed)) or "none"
            message = (
                f"Content sync did not complete (failed: {failed}); "
                "the edge was not invalidated"
            )
            if report.stale_paths:
                stale = ", ".join(report.stale_paths)
                message += (
                    f". Content is live at the origin but not invalidated for: {stale}. "
                    f"Retry with: {report.retry_command}"
                )
            raise _Failed(Stage.SYNCING, e, message) from e
        except EdgeError as e:
            raise _Failed(Stage.SYNCING, e, f"Content sync failed: {e}") from e
        self._record_sync(report, result)
        return result

    @staticmethod
    def _record_sync(report: RunReport, result: SyncResult) -> None:
        report.objects_uploaded = list(result.uploaded)
        report.objects_deleted = list(result.deleted)
        report.objects_failed = dict(result.failed)
        report.objects_skipped = list(result.skipped)

    def _invalidate(
        self,
        report: RunReport,
        sync_result: SyncResult,
        cancel: CancelToken | None,
    ) -> None:
        keys = sync_result.invalidation_paths
        paths = self._invalidator.paths_for(keys)
        report.invalidation_paths = paths
        stale_message = (
            "Content is live at the origin but the edge may still serve stale copies of: "
            + ", ".join(paths)
        )
        try:
            self._check_cancel(cancel, Stage.INVALIDATING)
        except _Failed as failed:
            report.stale_paths = paths
            raise _Failed(failed.stage, failed.cause, stale_message) from failed.cause

        self._transition(report, Stage.INVALIDATING)
        assert report.distribution_id is not None
        try:
            result = self._invalidator.invalidate(report.distribution_id, keys, cancel=cancel)
        except InvalidationError as e:
            report.invalidation_ids = list(e.invalidation_ids)
            report.stale_paths = list(e.failed_paths)
            stale = ", ".join(e.failed_paths)
            raise _Failed(
                Stage.INVALIDATING,
                e,
                "Content is live at the origin but the edge may still serve stale copies of: "
                + stale,
            ) from e
        except EdgeError as e:
            if isinstance(e, OperationCanceled) and e.result is not None:
                report.invalidation_ids = list(e.result.invalidation_ids)
            report.stale_paths = paths
            raise _Failed(Stage.INVALIDATING, e, stale_message) from e
        report.invalidation_ids = list(result.invalidation_ids)
