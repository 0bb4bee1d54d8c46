"""Observed remote state of a resource."""

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field


def _canonical_json(obj: Any) -> str:
    # Stable encoding for hashes. `default=str` keeps it robust for
    # datetimes/paths/etc while staying deterministic enough for our use.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's properties."""
    payload = _canonical_json(attrs)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResourceState(BaseModel):
    """What the provider reports for one descriptor.

    Rebuilt from the provider on every reconciliation pass and never written
    to disk; the remote is the source of truth.

    Attributes:
        id: Descriptor id this state belongs to
        kind: Descriptor kind
        remote_properties: Properties and outputs as read from the provider
        exists: Whether the remote resource exists
        last_applied_hash: Hash of ``remote_properties`` after the last read or apply
    """

    id: str
    kind: str
    remote_properties: dict[str, Any] = Field(default_factory=dict)
    exists: bool = False
    last_applied_hash: str = ""

    @classmethod
    def observed(
        cls, resource_id: str, kind: str, attrs: Mapping[str, Any] | None
    ) -> "ResourceState":
        """Build a state from a handler read (``None`` = absent remotely)."""
        if attrs is None:
            return cls(id=resource_id, kind=kind)
        return cls(
            id=resource_id,
            kind=kind,
            remote_properties=dict(attrs),
            exists=True,
            last_applied_hash=compute_attributes_hash(attrs),
        )

    def output(self, attr: str) -> Any:
        return self.remote_properties.get(attr)
