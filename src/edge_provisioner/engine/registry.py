"""Resource kind registry for handler dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from edge_provisioner.errors import UnknownResourceKindError

if TYPE_CHECKING:
    from edge_provisioner.engine.handlers import ResourceHandler
    from edge_provisioner.resources.base import Resource


@dataclass(frozen=True)
class ResourceKindRegistration:
    kind: str
    model: type[Resource]
    handler: ResourceHandler[Any]


class ResourceKindRegistry:
    """Registry mapping kind -> (model, handler)."""

    def __init__(self) -> None:
        self._registrations: dict[str, ResourceKindRegistration] = {}

    def register(self, model: type[Resource], handler: ResourceHandler[Any]) -> None:
        field = model.model_fields.get("kind")
        kind = field.default if field is not None else None
        if not isinstance(kind, str) or not kind:
            raise ValueError("Resource model must define a non-empty default for `kind`")

        if kind in self._registrations:
            raise ValueError(f"Resource kind already registered: {kind}")

        self._registrations[kind] = ResourceKindRegistration(
            kind=kind,
            model=model,
            handler=handler,
        )

    def get(self, kind: str) -> ResourceKindRegistration:
        try:
            return self._registrations[kind]
        except KeyError as e:
            raise UnknownResourceKindError(kind) from e

    def kinds(self) -> list[str]:
        return sorted(self._registrations)
