from __future__ import annotations

import argparse
from pathlib import Path

from edge_provisioner.config import deploy, load, plan, sync_plan


def _transition(old: object, new: object) -> None:
    print(f"[deploy] {getattr(old, 'value', old)} -> {getattr(new, 'value', new)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Plan/deploy edge-provisioner via the Python API")
    parser.add_argument("--config", default="edge-provisioner.yaml", help="Path to config file")
    parser.add_argument("--deploy", action="store_true", help="Run the full deploy pipeline")
    args = parser.parse_args()

    config = load(Path(args.config))

    plan_obj = plan(config)
    print("Plan summary:", plan_obj.summary())
    for change in plan_obj.changes:
        print(f"- {change.action.value:6} {change.id}")

    print("Content summary:", sync_plan(config).summary())

    if args.deploy:
        report = deploy(config, on_transition=_transition)
        print(report.to_json())
        raise SystemExit(0 if report.ok else 1)


if __name__ == "__main__":
    main()
