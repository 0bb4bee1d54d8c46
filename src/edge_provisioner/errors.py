"""Error taxonomy shared by the reconciler, the publish pipeline and the CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable


class EdgeError(Exception):
    """Base exception for edge-provisioner errors."""


class ConfigurationError(EdgeError):
    """Raised for invalid configuration or descriptor sets, before any remote call."""


class UnknownResourceKindError(ConfigurationError):
    """Raised when a descriptor kind has no registered handler."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unsupported resource kind: {kind}")
        self.kind = kind


class CyclicDependencyError(EdgeError):
    """Raised when resource references form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        msg = "Dependency cycle detected"
        if cycle:
            msg += f": {' -> '.join(cycle)}"
        super().__init__(msg)
        self.cycle = cycle


class UnresolvedReferenceError(EdgeError):
    """Raised when a reference targets a resource not yet applied in this pass.

    The graph ordering makes this impossible for well-formed input, so it
    signals a defect rather than a transient fault.
    """

    def __init__(self, resource_id: str, target: str, attr: str | None = None) -> None:
        what = f"{target}.{attr}" if attr else target
        super().__init__(f"Resource '{resource_id}' references '{what}' before it was applied")
        self.resource_id = resource_id
        self.target = target
        self.attr = attr


class ProviderError(EdgeError):
    """A remote provider call failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class ProviderUnavailableError(ProviderError):
    """Transport-level or throttling failure; safe to retry read-only and idempotent calls."""


class ImmutablePropertyError(EdgeError):
    """Raised when a desired change touches a property that cannot change after creation."""

    def __init__(self, resource_id: str, properties: Iterable[str]) -> None:
        self.resource_id = resource_id
        self.properties = sorted(properties)
        super().__init__(
            f"Cannot change immutable properties of '{resource_id}': {', '.join(self.properties)}"
        )


class ResourceApplyError(EdgeError):
    """Raised when creating or updating a resource fails.

    Carries which resources were applied before the failure and which were
    never attempted, so a caller can retry the whole (idempotent) run.  The
    original exception is chained via ``__cause__``.
    """

    def __init__(
        self,
        *,
        resource_id: str,
        cause: BaseException,
        applied: list[str],
        not_attempted: list[str],
    ) -> None:
        self.resource_id = resource_id
        self.cause = cause
        self.applied = applied
        self.not_attempted = not_attempted
        super().__init__(f"Apply failed on {resource_id}: {cause}")


class SyncIncompleteError(EdgeError):
    """Raised when one or more object transfers exhausted their retries."""

    def __init__(
        self,
        *,
        succeeded: list[str],
        failed: dict[str, str],
        skipped: list[str] | None = None,
        result: Any = None,
    ) -> None:
        self.succeeded = succeeded
        self.failed = failed
        self.skipped = skipped or []
        self.result = result
        super().__init__(
            f"Content sync incomplete: {len(failed)} failed, {len(succeeded)} succeeded"
            + (f", {len(self.skipped)} skipped" if self.skipped else "")
        )


class InvalidationError(EdgeError):
    """Raised when one or more invalidation sub-requests did not complete."""

    def __init__(
        self,
        *,
        submitted_paths: list[str],
        failed_paths: list[str],
        invalidation_ids: list[str] | None = None,
        message: str = "",
    ) -> None:
        self.submitted_paths = submitted_paths
        self.failed_paths = failed_paths
        self.invalidation_ids = invalidation_ids or []
        detail = f": {message}" if message else ""
        super().__init__(
            f"Invalidation incomplete ({len(failed_paths)} paths failed, "
            f"{len(submitted_paths)} submitted){detail}"
        )


class OperationCanceled(EdgeError):
    """Raised when a run stops early because cancellation was requested.

    ``result`` optionally carries the partial outcome of the interrupted stage.
    """

    def __init__(self, message: str = "Operation canceled", *, result: Any = None) -> None:
        super().__init__(message)
        self.result = result


class RunLockError(EdgeError):
    """Raised when the advisory run lock cannot be acquired or released."""
