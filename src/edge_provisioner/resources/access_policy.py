"""Store access policy descriptor."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal

from pydantic import Field

from edge_provisioner.resources.base import Resource
from edge_provisioner.resources.markers import Immutable, Ref

POLICY_VERSION = "2012-10-17"
CDN_READ_SID = "AllowCDNServicePrincipalReadOnly"


class AccessPolicyResource(Resource):
    """Resource policy attached to the origin store.

    When ``distribution`` is set, the rendered policy grants the CDN service
    principal read access to the store's objects, conditioned on that
    distribution's ARN.  ``statements`` are appended verbatim and may embed
    ``${<id>.<attr>}`` interpolations.
    """

    plan_priority: ClassVar[int] = 40

    kind: Literal["AccessPolicy"] = "AccessPolicy"
    store: Annotated[str, Ref("ObjectStore", attr="name"), Immutable()]
    distribution: Annotated[str | None, Ref("CDNDistribution", attr="arn")] = None
    statements: list[dict[str, Any]] = Field(default_factory=list)

    def render_policy(self) -> dict[str, Any]:
        """Render the policy document.  Call on a resolved descriptor."""
        statements: list[dict[str, Any]] = []
        if self.distribution:
            statements.append(
                {
                    "Sid": CDN_READ_SID,
                    "Effect": "Allow",
                    "Principal": {"Service": "cloudfront.amazonaws.com"},
                    "Action": "s3:GetObject",
                    "Resource": f"arn:aws:s3:::{self.store}/*",
                    "Condition": {"StringEquals": {"AWS:SourceArn": self.distribution}},
                }
            )
        statements.extend(self.statements)
        return {"Version": POLICY_VERSION, "Statement": statements}

