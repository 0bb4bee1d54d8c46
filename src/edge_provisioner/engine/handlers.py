"""Engine-facing handler interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.resources.base import Resource
from edge_provisioner.resources.markers import (
    CompareStrategy,
    collect_compare_strategies,
    collect_immutable_fields,
)

if TYPE_CHECKING:
    from edge_provisioner.core.provider import EdgeProvider
    from edge_provisioner.core.state import ResourceState

R = TypeVar("R", bound=Resource)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers."""

    provider: EdgeProvider
    retry: RetryPolicy = field(default_factory=RetryPolicy)


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers translate resolved descriptors into provider calls.  Every method
    receiving *desired* gets a copy whose references are already resolved.
    Subclass and override ``read``, ``create`` and ``update``; the planning
    hooks are optional.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Single-resource validation. Return list of error messages (empty = valid)."""
        _ = ctx, desired
        return []

    def planned(self, desired: R) -> dict[str, Any]:
        """Properties as they should read back from the provider.

        Defaults to the declared properties plus the ownership marker.
        """
        return {**desired.desired_properties(), "owner": desired.id}

    def compare_strategies(self, desired: R) -> dict[str, CompareStrategy]:
        return collect_compare_strategies(desired)

    def immutable_properties(self, desired: R) -> frozenset[str]:
        return collect_immutable_fields(desired)

    def read(self, ctx: EngineContext, desired: R) -> dict[str, Any] | None:
        """Read the remote resource. Return None if it does not exist."""
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Create the remote resource. Return its properties and outputs."""
        raise NotImplementedError

    def update(
        self,
        ctx: EngineContext,
        desired: R,
        prior: ResourceState,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply *changes* (only the properties that differ). Return the new properties."""
        raise NotImplementedError
