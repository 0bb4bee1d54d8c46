"""Provider boundary: the remote operations the reconciler and publisher rely on.

Every provider returns plain dicts shaped like the descriptor properties they
describe, plus read-only outputs (ids, ARNs, domain names) and an ``owner`` key
holding the descriptor id recorded on the remote resource (``None`` when the
resource exists but was not created by this tool).

Failures surface as :class:`~edge_provisioner.errors.ProviderUnavailableError`
(transport faults, throttling; safe to retry idempotent calls) or
:class:`~edge_provisioner.errors.ProviderError` (anything else).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

InvalidationStatus: TypeAlias = Literal["pending", "completed", "failed"]

OWNER_TAG = "edge-provisioner:id"


@dataclass(frozen=True, slots=True)
class RemoteObject:
    """One object listed from the origin store."""

    key: str
    fingerprint: str
    size: int


class ObjectStoreAPI(Protocol):
    def find_store(self, owner_id: str, *, hint: str | None = None) -> dict[str, Any] | None:
        """Locate the store owned by *owner_id*; *hint* is the expected bucket name."""
        ...

    def create_store(self, owner_id: str, spec: Mapping[str, Any]) -> dict[str, Any]: ...

    def update_store(self, name: str, changes: Mapping[str, Any]) -> dict[str, Any]: ...

    def list_objects(self, store: str, prefix: str = "") -> list[RemoteObject]: ...

    def put_object(
        self,
        store: str,
        key: str,
        body: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> None: ...

    def delete_object(self, store: str, key: str) -> None: ...

    def get_policy(self, store: str) -> dict[str, Any] | None: ...

    def set_policy(self, store: str, policy: Mapping[str, Any]) -> None: ...


class AccessControlAPI(Protocol):
    def find_origin_access_control(
        self, owner_id: str, *, hint: str | None = None
    ) -> dict[str, Any] | None: ...

    def create_origin_access_control(
        self, owner_id: str, spec: Mapping[str, Any]
    ) -> dict[str, Any]: ...

    def update_origin_access_control(
        self, oac_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any]: ...


class CDNAPI(Protocol):
    def find_distribution(self, owner_id: str) -> dict[str, Any] | None: ...

    def create_distribution(self, owner_id: str, spec: Mapping[str, Any]) -> dict[str, Any]: ...

    def get_distribution(self, distribution_id: str) -> dict[str, Any] | None: ...

    def update_distribution(
        self, distribution_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any]: ...

    def create_invalidation(
        self, distribution_id: str, paths: Sequence[str], *, reference: str | None = None
    ) -> str:
        """Submit an invalidation batch and return its id.

        Resubmitting the same *reference* with the same paths must not create a
        second invalidation.
        """
        ...

    def get_invalidation_status(
        self, distribution_id: str, invalidation_id: str
    ) -> InvalidationStatus: ...


class EdgeProvider(ObjectStoreAPI, AccessControlAPI, CDNAPI, Protocol):
    """Everything a deployment needs from the cloud."""
