"""Base descriptor class for edge resources."""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from edge_provisioner.resources.markers import (
    ResourceRef,
    collect_ref_specs,
    find_interpolations,
)

_NON_PROPERTY_FIELDS = frozenset({"id", "kind", "depends_on"})


class Resource(BaseModel):
    """Base class for all resource descriptors.

    Descriptors are pure data - they define the desired state and are frozen
    once loaded.  Handlers know how to read, create and update them remotely.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Lower values are applied first when the graph leaves the order open.
    plan_priority: ClassVar[int] = 100

    id: str = Field(pattern=r"^[A-Za-z0-9_\-]+$")
    kind: str

    # Extra ordering constraints beyond the ones implied by references.
    depends_on: list[str] = Field(default_factory=list)

    def desired_properties(self) -> dict[str, Any]:
        """Declared properties, keyed by name (identity and lifecycle fields excluded)."""
        return self.model_dump(exclude=set(_NON_PROPERTY_FIELDS))

    def reference_specs(self) -> list[ResourceRef]:
        """Every reference this descriptor makes, from ``Ref`` fields and interpolations."""
        refs = collect_ref_specs(self)
        for name, value in self.desired_properties().items():
            refs.extend(
                ResourceRef(target=r.target, attr=r.attr, field=name)
                for r in find_interpolations(value)
            )
        return refs

    def references(self) -> list[str]:
        """Sorted ids of the descriptors this one must be applied after."""
        targets = {ref.target for ref in self.reference_specs()}
        targets.update(self.depends_on)
        targets.discard(self.id)
        return sorted(targets)
