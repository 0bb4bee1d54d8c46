"""Origin object store descriptor."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from edge_provisioner.resources.base import Resource
from edge_provisioner.resources.markers import Compare, Immutable


class ObjectStoreResource(Resource):
    """The bucket that holds the site's content and acts as the CDN origin.

    Outputs: ``name``, ``arn``, ``regional_domain_name``.
    """

    plan_priority: ClassVar[int] = 10

    kind: Literal["ObjectStore"] = "ObjectStore"
    bucket_name: Annotated[str, Immutable()] = Field(
        pattern=r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$"
    )
    region: Annotated[str, Immutable()] = Field(min_length=1)
    versioning: bool = False
    block_public_access: bool = True
    tags: Annotated[dict[str, str], Compare("partial")] = Field(default_factory=dict)
