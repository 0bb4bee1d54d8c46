"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, Discriminator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.publish.invalidator import MAX_BATCH_SIZE
from edge_provisioner.resources.access_control import (
    OriginAccessControlResource,  # noqa: TC001 - Pydantic needs this at runtime
)
from edge_provisioner.resources.access_policy import (
    AccessPolicyResource,  # noqa: TC001 - Pydantic needs this at runtime
)
from edge_provisioner.resources.distribution import (
    DistributionResource,  # noqa: TC001 - Pydantic needs this at runtime
)
from edge_provisioner.resources.object_store import (
    ObjectStoreResource,  # noqa: TC001 - Pydantic needs this at runtime
)

if TYPE_CHECKING:
    from edge_provisioner.resources.base import Resource


class ProviderConfig(BaseSettings):
    """Cloud provider connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``EDGE_`` prefix.  Constructor kwargs take precedence.

    Credentials are never configured here; boto3's default credential chain
    (environment, shared config, instance role) supplies them, optionally
    narrowed to a named ``profile``.
    """

    model_config = SettingsConfigDict(env_prefix="EDGE_")

    region: str = "us-east-1"
    profile: str | None = None
    endpoint_url: str | None = None


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


class RetryConfig(BaseModel):
    attempts: int = Field(default=3, ge=1)
    backoff: float = Field(default=0.5, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_backoff: float = Field(default=8.0, ge=0)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.attempts,
            backoff=self.backoff,
            multiplier=self.multiplier,
            max_backoff=self.max_backoff,
        )


class ContentConfig(BaseModel):
    """Local asset tree and how it maps onto the store.

    ``cache_control`` maps glob patterns (matched against the path relative to
    ``root``) to a ``Cache-Control`` header; the first matching pattern wins.
    """

    root: Path = Path("site")
    prefix: str = ""
    delete: bool = True
    exclude: Annotated[list[str], BeforeValidator(_none_to_list)] = []
    cache_control: Annotated[dict[str, str], BeforeValidator(_none_to_dict)] = {}
    workers: int = Field(default=8, ge=1, le=64)


class InvalidationConfig(BaseModel):
    mode: Literal["changed", "all"] = "changed"
    batch_size: int = Field(default=1000, ge=1, le=MAX_BATCH_SIZE)
    workers: int = Field(default=1, ge=1, le=16)
    include_directory_indexes: bool = False
    wait: bool = False
    poll_interval: float = Field(default=5.0, gt=0)
    timeout: float = Field(default=600.0, gt=0)


class DeployConfig(BaseModel):
    """Descriptor ids the publish pipeline targets.

    Either may be omitted when the configuration declares exactly one
    resource of that kind.
    """

    store: str | None = None
    distribution: str | None = None


_ResourceEntry = Annotated[
    ObjectStoreResource
    | OriginAccessControlResource
    | DistributionResource
    | AccessPolicyResource,
    Discriminator("kind"),
]


class Config(BaseModel):
    """Provisioning configuration - validates YAML structure directly."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    invalidation: InvalidationConfig = Field(default_factory=InvalidationConfig)
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    resources: Annotated[list[_ResourceEntry], BeforeValidator(_none_to_list)] = []
    config_dir: Path = Path()

    @property
    def content_root(self) -> Path:
        """``content.root``, resolved against the config file's directory when relative."""
        root = self.content.root
        return root if root.is_absolute() else self.config_dir / root

    def resource(self, resource_id: str) -> Resource | None:
        return next((r for r in self.resources if r.id == resource_id), None)
