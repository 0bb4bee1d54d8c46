"""Origin access control descriptor."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from edge_provisioner.resources.base import Resource
from edge_provisioner.resources.markers import Immutable


class OriginAccessControlResource(Resource):
    """Signing identity the CDN uses when fetching from a private origin store.

    Outputs: ``id``.
    """

    plan_priority: ClassVar[int] = 20

    kind: Literal["OriginAccessControl"] = "OriginAccessControl"
    name: str = Field(min_length=1, max_length=64)
    description: str = ""
    origin_type: Annotated[Literal["s3", "mediastore"], Immutable()] = "s3"
    signing_behavior: Literal["always", "never", "no-override"] = "always"
    signing_protocol: Literal["sigv4"] = "sigv4"
