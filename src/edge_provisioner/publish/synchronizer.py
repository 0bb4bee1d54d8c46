"""Content synchronizer: converge the store's objects with the local asset tree."""

from __future__ import annotations

import fnmatch
import logging
import mimetypes
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.errors import OperationCanceled, ProviderError, SyncIncompleteError
from edge_provisioner.publish.manifest import (
    build_local_manifest,
    build_remote_manifest,
    fingerprints,
)
from edge_provisioner.publish.plan import PublishPlan, build_publish_plan

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from edge_provisioner.core.provider import ObjectStoreAPI
    from edge_provisioner.publish.cancel import CancelToken
    from edge_provisioner.publish.manifest import LocalObject

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(key: str) -> str:
    content_type, _ = mimetypes.guess_type(key)
    return content_type or DEFAULT_CONTENT_TYPE


class SyncResult(BaseModel):
    """Per-object outcome of a sync."""

    plan: PublishPlan
    uploaded: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return sorted([*self.uploaded, *self.deleted])

    @property
    def invalidation_paths(self) -> list[str]:
        """Keys to invalidate: the plan's changed keys whose transfer succeeded."""
        return sorted(self.plan.restricted_to(self.succeeded))

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


class _Outcomes:
    """Thread-safe accumulation of per-object results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.failed: dict[str, str] = {}
        self.skipped: list[str] = []

    def record(self, bucket: list[str], key: str) -> None:
        with self._lock:
            bucket.append(key)

    def fail(self, key: str, reason: str) -> None:
        with self._lock:
            self.failed[key] = reason

    def to_result(self, plan: PublishPlan) -> SyncResult:
        with self._lock:
            return SyncResult(
                plan=plan,
                uploaded=sorted(self.uploaded),
                deleted=sorted(self.deleted),
                failed=dict(sorted(self.failed.items())),
                skipped=sorted(self.skipped),
            )


class ContentSynchronizer:
    """Upload changed files and delete remote-only objects.

    Uploads run first, on a bounded thread pool; deletes run only once every
    upload succeeded, so a failed sync never removes an object the local tree
    still has.  Each transfer is retried on its own; one object exhausting
    its retries does not stop the others.
    """

    def __init__(
        self,
        provider: ObjectStoreAPI,
        *,
        workers: int = 8,
        retry: RetryPolicy | None = None,
        exclude: Iterable[str] = (),
        cache_control: Mapping[str, str] | None = None,
        delete: bool = True,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._provider = provider
        self._workers = workers
        self._retry = retry or RetryPolicy()
        self._exclude = list(exclude)
        self._cache_control = dict(cache_control or {})
        self._delete = delete

    def cache_control_for(self, relative: str) -> str | None:
        """First ``cache_control`` rule whose glob matches *relative*, if any."""
        for pattern, value in self._cache_control.items():
            if fnmatch.fnmatch(relative, pattern):
                return value
        return None

    def _compute(
        self, root: Path, store: str, prefix: str
    ) -> tuple[PublishPlan, dict[str, LocalObject]]:
        local = build_local_manifest(Path(root), prefix=prefix, exclude=self._exclude)
        remote = self._retry.call(
            lambda: build_remote_manifest(self._provider, store, prefix=prefix),
            description=f"list {store}",
        )
        plan = build_publish_plan(fingerprints(local), fingerprints(remote), delete=self._delete)
        return plan, local

    def plan(self, root: Path, store: str, *, prefix: str = "") -> PublishPlan:
        """Compute the publish plan without transferring anything."""
        plan, _ = self._compute(root, store, prefix)
        return plan

    def _upload(self, store: str, obj: LocalObject) -> None:
        self._provider.put_object(
            store,
            obj.key,
            obj.path.read_bytes(),
            content_type=guess_content_type(obj.relative),
            cache_control=self.cache_control_for(obj.relative),
            metadata={"fingerprint": obj.fingerprint},
        )

    def _transfer(
        self,
        key: str,
        action: Callable[[], None],
        done: list[str],
        outcomes: _Outcomes,
        cancel: CancelToken | None,
        verb: str,
    ) -> None:
        if cancel is not None and cancel.is_set():
            outcomes.record(outcomes.skipped, key)
            return
        try:
            self._retry.call(action, description=f"{verb} {key}", retry_on=(ProviderError,))
        except (ProviderError, OSError) as exc:
            logger.error("Failed to %s %s: %s", verb, key, exc)
            outcomes.fail(key, str(exc))
            return
        logger.debug("%s %s", verb.capitalize(), key)
        outcomes.record(done, key)

    def _run_all(
        self,
        jobs: list[tuple[str, Callable[[], None]]],
        done: list[str],
        outcomes: _Outcomes,
        cancel: CancelToken | None,
        verb: str,
    ) -> None:
        if not jobs:
            return
        with ThreadPoolExecutor(
            max_workers=min(self._workers, len(jobs)), thread_name_prefix="edge-sync"
        ) as pool:
            futures = [
                pool.submit(self._transfer, key, action, done, outcomes, cancel, verb)
                for key, action in jobs
            ]
            for f in futures:
                f.result()

    def execute(
        self,
        plan: PublishPlan,
        local: Mapping[str, LocalObject],
        store: str,
        *,
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        """Carry out *plan* against *store*.

        Raises:
            SyncIncompleteError: a transfer exhausted its retries.
            OperationCanceled: *cancel* was set before every transfer started.
        """
        outcomes = _Outcomes()
        uploads = [
            (key, lambda obj=local[key]: self._upload(store, obj))
            for key in sorted(plan.to_upload)
        ]
        logger.info("Uploading %d objects to %s", len(uploads), store)
        self._run_all(uploads, outcomes.uploaded, outcomes, cancel, "upload")

        deletes = sorted(plan.to_delete)
        if outcomes.failed or outcomes.skipped:
            outcomes.skipped.extend(deletes)
        else:
            logger.info("Deleting %d objects from %s", len(deletes), store)
            jobs = [(key, lambda k=key: self._provider.delete_object(store, k)) for key in deletes]
            self._run_all(jobs, outcomes.deleted, outcomes, cancel, "delete")

        result = outcomes.to_result(plan)
        if result.failed:
            raise SyncIncompleteError(
                succeeded=result.succeeded,
                failed=result.failed,
                skipped=result.skipped,
                result=result,
            )
        if result.skipped:
            raise OperationCanceled(
                f"Content sync canceled; {len(result.skipped)} transfers not started",
                result=result,
            )
        logger.info(
            "Synced %s: %d uploaded, %d deleted",
            store,
            len(result.uploaded),
            len(result.deleted),
        )
        return result

    def sync(
        self,
        root: Path,
        store: str,
        *,
        prefix: str = "",
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        """Plan and execute in one step."""
        plan, local = self._compute(root, store, prefix)
        return self.execute(plan, local, store, cancel=cancel)
