"""Static validation of a descriptor set."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from edge_provisioner.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from edge_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)


def descriptor_errors(resources: Iterable[Resource]) -> list[str]:
    """Return every problem found in *resources* (empty = valid).

    Checks id uniqueness, that every reference names a declared descriptor, and
    that typed references point at a descriptor of the expected kind.
    """
    errors: list[str] = []
    by_id: dict[str, Resource] = {}
    for r in resources:
        if r.id in by_id:
            errors.append(f"Duplicate resource id '{r.id}' ({by_id[r.id].kind} and {r.kind})")
            continue
        by_id[r.id] = r

    for r in by_id.values():
        for ref in r.reference_specs():
            target = by_id.get(ref.target)
            where = f"'{r.id}'" + (f" (field '{ref.field}')" if ref.field else "")
            if target is None:
                errors.append(f"Resource {where} references unknown id '{ref.target}'")
            elif ref.kind is not None and target.kind != ref.kind:
                errors.append(
                    f"Resource {where} expects a {ref.kind} but '{ref.target}' is a {target.kind}"
                )
        errors.extend(
            f"Resource '{r.id}' depends on unknown id '{dep}'"
            for dep in r.depends_on
            if dep not in by_id
        )
    return errors


def validate_descriptors(resources: Iterable[Resource]) -> None:
    """Raise ``ConfigurationError`` listing every problem in *resources*."""
    resources = list(resources)
    errors = descriptor_errors(resources)
    if errors:
        raise ConfigurationError("\n".join(errors))
    logger.debug("Validated %d resource descriptors", len(resources))
