"""Declarative field markers for resource descriptors.

Three markers attach to Pydantic fields via ``Annotated``:

- ``Ref``       - field names another descriptor and resolves to one of its outputs
- ``Immutable`` - field cannot change once the remote resource exists
- ``Compare``   - field-level comparison strategy used by the reconciler

String values anywhere in a descriptor may also embed ``${<id>.<attr>}``
interpolations, which count as references too.  Helper functions introspect
both forms at runtime.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypeVar

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")
CompareStrategy: TypeAlias = Literal["partial", "exact", "set"]

INTERPOLATION_RE = re.compile(r"\$\{(?P<target>[A-Za-z0-9_\-]+)\.(?P<attr>[A-Za-z0-9_]+)\}")


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """A single reference from one descriptor to another descriptor's output.

    ``field`` is the property holding the reference (``None`` for references
    found through interpolation).
    """

    target: str
    attr: str
    kind: str | None = None
    field: str | None = None


# ── Marker dataclasses ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Ref:
    """Field holds the id of another descriptor and resolves to its ``attr`` output.

    ``kind`` is optional - ``None`` means "any kind".
    """

    kind: str | None = None
    attr: str = "id"


@dataclass(frozen=True, slots=True)
class Immutable:
    """Field cannot be changed after the remote resource has been created."""


@dataclass(frozen=True, slots=True)
class Compare:
    """How the reconciler should compare the field.

    - ``"partial"``: for dict values, only keys declared in desired are compared
    - ``"exact"``: strict equality comparison
    - ``"set"``: order-insensitive list comparison
    """

    strategy: CompareStrategy


# ── Shared introspection primitives ─────────────────────────────────


def _find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def _iter_marked_fields(
    model_or_cls: Any,
    marker_type: type[M],
) -> list[tuple[str, FieldInfo, M]]:
    """Return ``(field_name, field_info, marker)`` for every field carrying *marker_type*."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return [
        (name, fi, marker)
        for name, fi in cls.model_fields.items()
        if (marker := _find_marker(fi, marker_type)) is not None
    ]


def _coerce_to_list(value: Any) -> list[str]:
    """Normalize a scalar, list, or ``None`` to a flat list of strings."""
    if value is None:
        return []
    return list(value) if isinstance(value, (list, tuple)) else [value]


def find_interpolations(value: Any) -> list[ResourceRef]:
    """Collect ``${id.attr}`` references embedded in string values, recursively."""
    if isinstance(value, str):
        return [
            ResourceRef(target=m.group("target"), attr=m.group("attr"))
            for m in INTERPOLATION_RE.finditer(value)
        ]
    if isinstance(value, dict):
        return [ref for v in value.values() for ref in find_interpolations(v)]
    if isinstance(value, (list, tuple)):
        return [ref for v in value for ref in find_interpolations(v)]
    return []


# ── Public helpers ──────────────────────────────────────────────────


def collect_ref_specs(resource: Any) -> list[ResourceRef]:
    """Collect typed references from ``Ref``-annotated fields."""
    refs: list[ResourceRef] = []
    for name, _, marker in _iter_marked_fields(resource, Ref):
        refs.extend(
            ResourceRef(target=ref, attr=marker.attr, kind=marker.kind, field=name)
            for ref in _coerce_to_list(getattr(resource, name))
        )
    return refs


def collect_compare_strategies(resource_or_cls: Any) -> dict[str, CompareStrategy]:
    """Collect per-field compare strategies from ``Compare`` markers."""
    return {
        name: marker.strategy for name, _, marker in _iter_marked_fields(resource_or_cls, Compare)
    }


def collect_immutable_fields(resource_or_cls: Any) -> frozenset[str]:
    """Names of fields marked ``Immutable``."""
    return frozenset(name for name, _, _ in _iter_marked_fields(resource_or_cls, Immutable))
