"""Deferred resolution of cross-resource references.

Descriptors name other descriptors (``Ref`` fields) or embed
``${<id>.<attr>}`` in strings.  Both resolve to outputs of resources already
applied earlier in the same pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from edge_provisioner.errors import UnresolvedReferenceError
from edge_provisioner.resources.markers import INTERPOLATION_RE, collect_ref_specs

if TYPE_CHECKING:
    from collections.abc import Mapping

    from edge_provisioner.core.state import ResourceState
    from edge_provisioner.resources.base import Resource

R = TypeVar("R", bound="Resource")

KNOWN_AFTER_APPLY = "(known after apply)"


class _Resolver:
    def __init__(
        self,
        resource_id: str,
        states: Mapping[str, ResourceState],
        placeholder: str | None,
    ) -> None:
        self._resource_id = resource_id
        self._states = states
        self._placeholder = placeholder

    def output(self, target: str, attr: str) -> Any:
        state = self._states.get(target)
        value = state.output(attr) if state is not None and state.exists else None
        if value is not None:
            return value
        if self._placeholder is not None:
            return self._placeholder
        raise UnresolvedReferenceError(self._resource_id, target, attr)

    def interpolate(self, value: Any) -> Any:
        if isinstance(value, str):
            return INTERPOLATION_RE.sub(
                lambda m: str(self.output(m.group("target"), m.group("attr"))), value
            )
        if isinstance(value, dict):
            return {k: self.interpolate(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.interpolate(v) for v in value]
        return value


def resolve_references(
    resource: R,
    states: Mapping[str, ResourceState],
    *,
    placeholder: str | None = None,
) -> R:
    """Return a copy of *resource* with every reference replaced by its target's output.

    *states* holds the resources applied so far in this pass.  Without a
    *placeholder*, a reference to a resource that is absent from *states* (or
    lacks the output) raises ``UnresolvedReferenceError``; with one, the
    placeholder is substituted instead (used for plan previews).
    """
    resolver = _Resolver(resource.id, states, placeholder)
    update: dict[str, Any] = {}

    ref_fields: dict[str, list[Any]] = {}
    for ref in collect_ref_specs(resource):
        assert ref.field is not None
        ref_fields.setdefault(ref.field, []).append(resolver.output(ref.target, ref.attr))
    for name, values in ref_fields.items():
        update[name] = values if isinstance(getattr(resource, name), list) else values[0]

    for name, value in resource.desired_properties().items():
        if name in update:
            continue
        resolved = resolver.interpolate(value)
        if resolved != value:
            update[name] = resolved

    if not update:
        return resource
    return resource.model_copy(update=update)
