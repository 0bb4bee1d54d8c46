"""Run report produced by the deployment coordinator."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Iterable


def invalidate_command(paths: Iterable[str]) -> str:
    """CLI command that re-issues the invalidation of *paths*."""
    return "edge-provisioner invalidate " + " ".join(paths)


class Stage(str, Enum):
    IDLE = "Idle"
    RECONCILING = "Reconciling"
    SYNCING = "Syncing"
    INVALIDATING = "Invalidating"
    COMPLETE = "Complete"
    FAILED = "Failed"


class RunReport(BaseModel):
    """Outcome of one deployment run.

    On failure ``failed_stage`` and ``cause`` say where and why the pipeline
    stopped, and the remaining fields say how far it got, which is what a
    caller needs to decide whether a plain re-run is safe.

    ``stage_reached`` is the last stage the pipeline entered, not the last
    one it finished: a run that fails while syncing reports ``Syncing``, and
    every stage before it completed.

    ``stale_paths`` lists edge paths whose new content is live at the origin
    but whose invalidation was never confirmed.  A later deploy plans those
    objects as unchanged and will not invalidate them, so they must be
    cleared with ``retry_command``.
    """

    status: Stage = Stage.IDLE
    stage_reached: Stage = Stage.IDLE
    failed_stage: Stage | None = None
    cause: str | None = None
    cause_type: str | None = None
    message: str = ""

    store: str | None = None
    distribution_id: str | None = None
    domain_name: str | None = None

    resources_applied: list[str] = Field(default_factory=list)
    resources_not_attempted: list[str] = Field(default_factory=list)
    objects_uploaded: list[str] = Field(default_factory=list)
    objects_deleted: list[str] = Field(default_factory=list)
    objects_failed: dict[str, str] = Field(default_factory=dict)
    objects_skipped: list[str] = Field(default_factory=list)
    invalidation_paths: list[str] = Field(default_factory=list)
    invalidation_ids: list[str] = Field(default_factory=list)
    stale_paths: list[str] = Field(default_factory=list)

    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status is Stage.COMPLETE

    @property
    def retry_command(self) -> str | None:
        if not self.stale_paths:
            return None
        return invalidate_command(self.stale_paths)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
