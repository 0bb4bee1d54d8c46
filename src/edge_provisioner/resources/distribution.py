"""CDN distribution descriptor."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from edge_provisioner.resources.base import Resource
from edge_provisioner.resources.markers import Compare, Ref

# Managed "CachingOptimized" cache policy.
CACHING_OPTIMIZED_POLICY_ID = "658327ea-f89d-4fab-a63d-7e88639e58f6"


class ErrorResponse(BaseModel):
    """Custom error page served by the edge for an origin error code."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    error_code: int = Field(ge=400, le=599)
    response_code: int | None = Field(default=None, ge=200, le=599)
    response_page_path: str | None = Field(default=None, pattern=r"^/")
    min_ttl: int = Field(default=10, ge=0)


class DistributionResource(Resource):
    """An edge distribution fronting the origin store.

    ``origin`` names an ``ObjectStore`` descriptor and resolves to its regional
    domain name; ``origin_access_control`` names an ``OriginAccessControl``
    descriptor and resolves to its id.

    Outputs: ``id``, ``arn``, ``domain_name``.
    """

    plan_priority: ClassVar[int] = 30

    kind: Literal["CDNDistribution"] = "CDNDistribution"
    origin: Annotated[str, Ref("ObjectStore", attr="regional_domain_name")]
    origin_access_control: Annotated[str | None, Ref("OriginAccessControl", attr="id")] = None
    comment: str = Field(default="", max_length=128)
    enabled: bool = True
    default_root_object: str = "index.html"
    price_class: Literal["PriceClass_All", "PriceClass_200", "PriceClass_100"] = "PriceClass_100"
    aliases: Annotated[list[str], Compare("set")] = Field(default_factory=list)
    certificate_arn: str | None = None
    viewer_protocol_policy: Literal["allow-all", "https-only", "redirect-to-https"] = (
        "redirect-to-https"
    )
    cache_policy_id: str = CACHING_OPTIMIZED_POLICY_ID
    compress: bool = True
    http_version: Literal["http1.1", "http2", "http2and3", "http3"] = "http2"
    error_responses: Annotated[list[ErrorResponse], Compare("exact")] = Field(
        default_factory=list
    )

    @model_validator(mode="after")
    def _check_aliases_have_certificate(self) -> Self:
        if self.aliases and not self.certificate_arn:
            raise ValueError("'certificate_arn' is required when 'aliases' are set")
        return self
