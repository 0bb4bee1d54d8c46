"""Cache invalidator: tell the edge to drop cached copies of changed paths."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Literal
from urllib.parse import quote

from pydantic import BaseModel, Field

from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.errors import InvalidationError, OperationCanceled, ProviderError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from edge_provisioner.core.provider import CDNAPI
    from edge_provisioner.publish.cancel import CancelToken

logger = logging.getLogger(__name__)

InvalidationMode = Literal["changed", "all"]

MAX_BATCH_SIZE = 3000
WILDCARD_PATH = "/*"
_SAFE_PATH_CHARS = "/-_.~!$&'()*+,;=:@"


def object_paths(
    keys: Iterable[str],
    *,
    include_directory_indexes: bool = False,
    index_document: str = "index.html",
) -> list[str]:
    """Map object keys to edge URL paths.

    ``dir/index.html`` additionally yields ``/dir/`` (and a root
    ``index.html`` yields ``/``) when *include_directory_indexes* is set.
    """
    paths: set[str] = set()
    for key in keys:
        paths.add("/" + quote(key, safe=_SAFE_PATH_CHARS))
        if include_directory_indexes and (
            key == index_document or key.endswith("/" + index_document)
        ):
            paths.add("/" + quote(key[: -len(index_document)], safe=_SAFE_PATH_CHARS))
    return sorted(paths)


def batched(paths: Sequence[str], size: int) -> list[list[str]]:
    return [list(paths[i : i + size]) for i in range(0, len(paths), size)]


class InvalidationResult(BaseModel):
    distribution_id: str
    paths: list[str] = Field(default_factory=list)
    invalidation_ids: list[str] = Field(default_factory=list)
    completed: bool = False


class CacheInvalidator:
    """Submit invalidations in batches and optionally wait for them.

    The operation succeeds only when every batch was accepted (and, with
    ``wait``, reported completed).  Invalidating a path twice is harmless,
    so a failed run can simply be retried.
    """

    def __init__(
        self,
        provider: CDNAPI,
        *,
        mode: InvalidationMode = "changed",
        batch_size: int = 1000,
        workers: int = 1,
        include_directory_indexes: bool = False,
        index_document: str = "index.html",
        wait: bool = False,
        poll_interval: float = 5.0,
        timeout: float = 600.0,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._provider = provider
        self._mode = mode
        self._batch_size = batch_size
        self._workers = workers
        self._include_directory_indexes = include_directory_indexes
        self._index_document = index_document
        self._wait = wait
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._retry = retry or RetryPolicy()
        self._clock = clock
        self._sleep = sleep

    def paths_for(self, keys: Iterable[str]) -> list[str]:
        """Edge paths to invalidate for the changed object *keys*."""
        keys = list(keys)
        if not keys:
            return []
        if self._mode == "all":
            return [WILDCARD_PATH]
        return object_paths(
            keys,
            include_directory_indexes=self._include_directory_indexes,
            index_document=self._index_document,
        )

    def invalidate(
        self,
        distribution_id: str,
        keys: Iterable[str],
        *,
        cancel: CancelToken | None = None,
    ) -> InvalidationResult:
        """Invalidate the edge paths of the changed object *keys*."""
        return self.invalidate_paths(distribution_id, self.paths_for(keys), cancel=cancel)

    def invalidate_paths(
        self,
        distribution_id: str,
        paths: Sequence[str],
        *,
        cancel: CancelToken | None = None,
    ) -> InvalidationResult:
        """Invalidate exactly *paths* (already in ``/path`` form).

        Raises:
            InvalidationError: a batch was rejected, failed or timed out.
            OperationCanceled: *cancel* was set before every batch was submitted.
        """
        result = InvalidationResult(distribution_id=distribution_id, paths=list(paths))
        if not paths:
            logger.info("Nothing to invalidate on %s", distribution_id)
            result.completed = True
            return result

        batches = batched(list(paths), self._batch_size)
        # Retries of one batch reuse its reference so the edge deduplicates them.
        run_ref = uuid.uuid4().hex
        submitted: dict[int, str] = {}
        failed: dict[int, str] = {}
        skipped: list[int] = []
        lock = threading.Lock()

        def submit(index: int) -> None:
            if cancel is not None and cancel.is_set():
                with lock:
                    skipped.append(index)
                return
            batch = batches[index]
            try:
                inv_id = self._retry.call(
                    lambda: self._provider.create_invalidation(
                        distribution_id, batch, reference=f"edge-{run_ref}-{index}"
                    ),
                    description=f"invalidate batch {index + 1}/{len(batches)}",
                )
            except ProviderError as exc:
                logger.error("Invalidation batch %d failed: %s", index + 1, exc)
                with lock:
                    failed[index] = str(exc)
                return
            logger.debug("Batch %d (%d paths) -> %s", index + 1, len(batch), inv_id)
            with lock:
                submitted[index] = inv_id

        logger.info(
            "Invalidating %d paths on %s in %d batches", len(paths), distribution_id, len(batches)
        )
        if self._workers == 1 or len(batches) == 1:
            for i in range(len(batches)):
                submit(i)
        else:
            with ThreadPoolExecutor(
                max_workers=min(self._workers, len(batches)), thread_name_prefix="edge-invalidate"
            ) as pool:
                for f in [pool.submit(submit, i) for i in range(len(batches))]:
                    f.result()

        result.invalidation_ids = [submitted[i] for i in sorted(submitted)]

        if self._wait and submitted and not failed:
            failed.update(self._wait_for(distribution_id, submitted, cancel))

        submitted_paths = [p for i in sorted(submitted) for p in batches[i]]
        if failed:
            raise InvalidationError(
                submitted_paths=submitted_paths,
                failed_paths=[p for i in sorted({*failed, *skipped}) for p in batches[i]],
                invalidation_ids=result.invalidation_ids,
                message="; ".join(failed[i] for i in sorted(failed)),
            )
        if skipped:
            raise OperationCanceled(
                f"Invalidation canceled; {len(skipped)} of {len(batches)} batches not submitted",
                result=result,
            )

        result.completed = True
        logger.info("Invalidation submitted: %s", ", ".join(result.invalidation_ids))
        return result

    def _wait_for(
        self,
        distribution_id: str,
        submitted: dict[int, str],
        cancel: CancelToken | None,
    ) -> dict[int, str]:
        """Poll until every invalidation completes; return the batches that did not."""
        pending = dict(submitted)
        failed: dict[int, str] = {}
        deadline = self._clock() + self._timeout
        while pending:
            for index, inv_id in list(pending.items()):
                try:
                    status = self._retry.call(
                        lambda inv_id=inv_id: self._provider.get_invalidation_status(
                            distribution_id, inv_id
                        ),
                        description=f"get invalidation {inv_id}",
                    )
                except ProviderError as exc:
                    failed[index] = str(exc)
                    del pending[index]
                    continue
                if status == "completed":
                    del pending[index]
                elif status == "failed":
                    failed[index] = f"invalidation {inv_id} failed"
                    del pending[index]
            if not pending:
                break
            if self._clock() >= deadline:
                for index, inv_id in pending.items():
                    failed[index] = (
                        f"invalidation {inv_id} did not complete within {self._timeout}s"
                    )
                break
            logger.debug("Waiting for %d invalidations", len(pending))
            if cancel is not None:
                if cancel.wait(self._poll_interval):
                    for index, inv_id in pending.items():
                        failed[index] = f"stopped waiting for {inv_id}: {cancel.reason}"
                    break
            else:
                self._sleep(self._poll_interval)
        return failed
