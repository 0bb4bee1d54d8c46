"""Publish plan: what to upload, delete and invalidate."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, computed_field

logger = logging.getLogger(__name__)


class PublishPlan(BaseModel):
    """Difference between the local content and the store.

    Every uploaded or deleted key must be invalidated at the edge and nothing
    else is, so ``invalidation_paths`` is always derived rather than stored.
    """

    model_config = ConfigDict(frozen=True)

    to_upload: frozenset[str] = frozenset()
    to_delete: frozenset[str] = frozenset()
    unchanged: frozenset[str] = frozenset()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def invalidation_paths(self) -> frozenset[str]:
        return self.to_upload | self.to_delete

    @property
    def has_changes(self) -> bool:
        return bool(self.to_upload or self.to_delete)

    def restricted_to(self, succeeded: Iterable[str]) -> frozenset[str]:
        """Invalidation paths limited to keys whose transfer succeeded."""
        return self.invalidation_paths & frozenset(succeeded)

    def summary(self) -> dict[str, int]:
        return {
            "upload": len(self.to_upload),
            "delete": len(self.to_delete),
            "unchanged": len(self.unchanged),
        }


def build_publish_plan(
    local: Mapping[str, str],
    remote: Mapping[str, str],
    *,
    delete: bool = True,
) -> PublishPlan:
    """Diff two ``key -> fingerprint`` manifests.

    A key is uploaded when it is absent remotely or its fingerprint differs,
    and deleted when it exists only remotely (unless *delete* is false, in
    which case remote-only keys are left alone).
    """
    to_upload = frozenset(k for k, fp in local.items() if remote.get(k) != fp)
    unchanged = frozenset(local) - to_upload
    to_delete = frozenset(remote) - frozenset(local) if delete else frozenset()
    plan = PublishPlan(to_upload=to_upload, to_delete=to_delete, unchanged=unchanged)
    logger.info("Publish plan: %s", plan.summary())
    return plan
