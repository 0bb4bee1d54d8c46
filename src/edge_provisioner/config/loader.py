"""YAML configuration file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from edge_provisioner.config.schema import Config
from edge_provisioner.errors import ConfigurationError
from edge_provisioner.resources.validation import descriptor_errors

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from edge_provisioner.resources.base import Resource

# Field name -> environment variable.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "region": "EDGE_REGION",
    "profile": "EDGE_PROFILE",
    "endpoint_url": "EDGE_ENDPOINT_URL",
}


def _resolve_provider(raw_provider: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Resolve provider fields from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    resolved: dict[str, Any] = {}
    for field, env_key in _PROVIDER_ENV_MAP.items():
        val = raw_provider.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            resolved[field] = val

    return resolved


def _single_id(resources: list[Resource], kind: str) -> str | None:
    ids = [r.id for r in resources if r.kind == kind]
    return ids[0] if len(ids) == 1 else None


def _resolve_deploy_targets(config: Config) -> list[str]:
    """Fill omitted deploy targets and check they name resources of the right kind."""
    errors: list[str] = []
    for field, kind in (("store", "ObjectStore"), ("distribution", "CDNDistribution")):
        target = getattr(config.deploy, field)
        if target is None:
            target = _single_id(config.resources, kind)
            setattr(config.deploy, field, target)
            if target is None:
                if any(r.kind == kind for r in config.resources):
                    errors.append(f"deploy.{field} is required when several {kind} are declared")
                continue
        resource = config.resource(target)
        if resource is None:
            errors.append(f"deploy.{field} references unknown resource '{target}'")
        elif resource.kind != kind:
            errors.append(
                f"deploy.{field} must reference a {kind}, '{target}' is a {resource.kind}"
            )
    return errors


def load_config(path: Path | str) -> Config:
    """Load a YAML configuration file and return a ``Config`` object.

    Raises:
        ConfigurationError: On YAML parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigurationError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    try:
        raw["provider"] = _resolve_provider(raw.get("provider") or {}, path.parent)
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc

    config.config_dir = path.parent

    errors = descriptor_errors(config.resources)
    errors.extend(_resolve_deploy_targets(config))
    if errors:
        raise ConfigurationError("\n".join(errors))

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
