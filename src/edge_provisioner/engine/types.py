"""Reconciler types (plan, changes, results)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from edge_provisioner.core.state import ResourceState


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    NOOP = "no-op"


class ResourceChange(BaseModel):
    id: str
    kind: str
    action: Action
    planned: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None

    def changed_properties(self) -> dict[str, Any]:
        """``name -> new value`` for every property in the diff."""
        return {k: d["to"] for k, d in (self.diff or {}).items()}


def _count(changes: list[ResourceChange]) -> dict[str, int]:
    counts = {a.value: 0 for a in Action}
    for c in changes:
        counts[c.action.value] += 1
    return counts


class Plan(BaseModel):
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    changes: list[ResourceChange]

    def summary(self) -> dict[str, int]:
        return _count(self.changes)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        path = Path(path)
        return cls.model_validate_json(path.read_text(encoding="utf-8"))


class ReconcileResult(BaseModel):
    """Outcome of a reconciliation pass.

    ``changes`` lists only the mutations that were made; ``states`` holds the
    observed state of every resource the pass converged, by id.
    """

    order: list[str] = Field(default_factory=list)
    changes: list[ResourceChange] = Field(default_factory=list)
    states: dict[str, ResourceState] = Field(default_factory=dict)

    @property
    def converged(self) -> list[str]:
        return [rid for rid in self.order if rid in self.states]

    @property
    def applied(self) -> list[str]:
        return [c.id for c in self.changes]

    def summary(self) -> dict[str, int]:
        return _count(self.changes)
