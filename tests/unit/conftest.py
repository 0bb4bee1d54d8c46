"""Shared fixtures for unit tests."""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pytest

from edge_provisioner.config import load
from edge_provisioner.core.provider import RemoteObject
from edge_provisioner.engine.retry import RetryPolicy
from edge_provisioner.resources import (
    AccessPolicyResource,
    DistributionResource,
    ErrorResponse,
    ObjectStoreResource,
    OriginAccessControlResource,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

    from edge_provisioner.config.schema import Config
    from edge_provisioner.resources.base import Resource

_EDGE_ENV_VARS = ("EDGE_REGION", "EDGE_PROFILE", "EDGE_ENDPOINT_URL", "EDGE_LOG")


@pytest.fixture(autouse=True)
def _clean_edge_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove EDGE_* env vars so unit tests don't leak host config."""
    for var in _EDGE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


# ---------------------------------------------------------------------------
# In-memory provider
# ---------------------------------------------------------------------------


@dataclass
class _Failure:
    method: str
    key: str | None
    exc: Exception
    remaining: int


class FakeProvider:
    """In-memory implementation of the ``EdgeProvider`` protocol.

    Mutating calls are logged in ``calls`` as ``(method, target)`` tuples and
    reads in ``reads``.  ``fail()`` makes a method raise for a number of calls.
    """

    def __init__(self) -> None:
        self.stores: dict[str, dict[str, Any]] = {}
        self.objects: dict[str, dict[str, bytes]] = {}
        self.object_headers: dict[tuple[str, str], dict[str, Any]] = {}
        self.policies: dict[str, dict[str, Any]] = {}
        self.oacs: dict[str, dict[str, Any]] = {}
        self.distributions: dict[str, dict[str, Any]] = {}
        self.invalidations: dict[str, dict[str, Any]] = {}
        self.invalidation_statuses: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.reads: list[tuple[str, str]] = []
        self._failures: list[_Failure] = []
        self._counter = 0

    # -- test helpers -------------------------------------------------------

    def fail(self, method: str, exc: Exception, *, key: str | None = None, times: int = 1) -> None:
        """Make *method* raise *exc* for the next *times* calls (matching *key* if given)."""
        self._failures.append(_Failure(method, key, exc, times))

    def _maybe_fail(self, method: str, key: str | None = None) -> None:
        for f in self._failures:
            if f.method == method and f.remaining > 0 and f.key in (None, key):
                f.remaining -= 1
                raise f.exc

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter:05d}"

    @property
    def mutating_calls(self) -> list[tuple[str, str]]:
        return list(self.calls)

    def put_content(self, store: str, key: str, body: bytes) -> None:
        """Seed an object without logging a call."""
        self.objects.setdefault(store, {})[key] = body

    # -- object store -------------------------------------------------------

    def find_store(self, owner_id: str, *, hint: str | None = None) -> dict[str, Any] | None:
        self.reads.append(("find_store", owner_id))
        self._maybe_fail("find_store", owner_id)
        for attrs in self.stores.values():
            if attrs["owner"] == owner_id:
                return copy.deepcopy(attrs)
        if hint is not None and hint in self.stores and self.stores[hint]["owner"] is None:
            return copy.deepcopy(self.stores[hint])
        return None

    def create_store(self, owner_id: str, spec: Mapping[str, Any]) -> dict[str, Any]:
        name = spec["bucket_name"]
        self.calls.append(("create_store", name))
        self._maybe_fail("create_store", name)
        self.stores[name] = {
            "bucket_name": name,
            "region": spec["region"],
            "versioning": spec.get("versioning", False),
            "block_public_access": spec.get("block_public_access", True),
            "tags": dict(spec.get("tags") or {}),
            "owner": owner_id,
            "name": name,
            "arn": f"arn:aws:s3:::{name}",
            "regional_domain_name": f"{name}.s3.{spec['region']}.amazonaws.com",
        }
        self.objects.setdefault(name, {})
        return copy.deepcopy(self.stores[name])

    def update_store(self, name: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("update_store", name))
        self._maybe_fail("update_store", name)
        attrs = self.stores[name]
        for k, v in changes.items():
            attrs[k] = {**attrs["tags"], **v} if k == "tags" else v
        return copy.deepcopy(attrs)

    def list_objects(self, store: str, prefix: str = "") -> list[RemoteObject]:
        self.reads.append(("list_objects", store))
        self._maybe_fail("list_objects", store)
        return [
            RemoteObject(key=k, fingerprint=hashlib.md5(body).hexdigest(), size=len(body))
            for k, body in sorted(self.objects.get(store, {}).items())
            if k.startswith(prefix)
        ]

    def put_object(
        self,
        store: str,
        key: str,
        body: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        self.calls.append(("put_object", key))
        self._maybe_fail("put_object", key)
        self.objects.setdefault(store, {})[key] = body
        self.object_headers[(store, key)] = {
            "content_type": content_type,
            "cache_control": cache_control,
            "metadata": dict(metadata or {}),
        }

    def delete_object(self, store: str, key: str) -> None:
        self.calls.append(("delete_object", key))
        self._maybe_fail("delete_object", key)
        self.objects.get(store, {}).pop(key, None)

    def get_policy(self, store: str) -> dict[str, Any] | None:
        self.reads.append(("get_policy", store))
        self._maybe_fail("get_policy", store)
        policy = self.policies.get(store)
        return copy.deepcopy(policy) if policy is not None else None

    def set_policy(self, store: str, policy: Mapping[str, Any]) -> None:
        self.calls.append(("set_policy", store))
        self._maybe_fail("set_policy", store)
        self.policies[store] = copy.deepcopy(dict(policy))

    # -- origin access control ---------------------------------------------

    def find_origin_access_control(
        self, owner_id: str, *, hint: str | None = None
    ) -> dict[str, Any] | None:
        self.reads.append(("find_origin_access_control", owner_id))
        self._maybe_fail("find_origin_access_control", owner_id)
        for attrs in self.oacs.values():
            if attrs["owner"] == owner_id:
                return copy.deepcopy(attrs)
        for attrs in self.oacs.values():
            if hint is not None and attrs["name"] == hint and attrs["owner"] is None:
                return copy.deepcopy(attrs)
        return None

    def create_origin_access_control(
        self, owner_id: str, spec: Mapping[str, Any]
    ) -> dict[str, Any]:
        self.calls.append(("create_origin_access_control", spec["name"]))
        self._maybe_fail("create_origin_access_control", spec["name"])
        oac_id = self._next_id("E")
        self.oacs[oac_id] = {**spec, "owner": owner_id, "id": oac_id}
        return copy.deepcopy(self.oacs[oac_id])

    def update_origin_access_control(
        self, oac_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any]:
        self.calls.append(("update_origin_access_control", oac_id))
        self._maybe_fail("update_origin_access_control", oac_id)
        self.oacs[oac_id].update(changes)
        return copy.deepcopy(self.oacs[oac_id])

    # -- distribution -------------------------------------------------------

    def find_distribution(self, owner_id: str) -> dict[str, Any] | None:
        self.reads.append(("find_distribution", owner_id))
        self._maybe_fail("find_distribution", owner_id)
        for attrs in self.distributions.values():
            if attrs["owner"] == owner_id:
                return copy.deepcopy(attrs)
        return None

    def create_distribution(self, owner_id: str, spec: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_distribution", owner_id))
        self._maybe_fail("create_distribution", owner_id)
        dist_id = self._next_id("D")
        self.distributions[dist_id] = {
            **copy.deepcopy(dict(spec)),
            "owner": owner_id,
            "id": dist_id,
            "arn": f"arn:aws:cloudfront::123456789012:distribution/{dist_id}",
            "domain_name": f"{dist_id.lower()}.cloudfront.net",
            "status": "Deployed",
        }
        return copy.deepcopy(self.distributions[dist_id])

    def get_distribution(self, distribution_id: str) -> dict[str, Any] | None:
        self.reads.append(("get_distribution", distribution_id))
        attrs = self.distributions.get(distribution_id)
        return copy.deepcopy(attrs) if attrs is not None else None

    def update_distribution(
        self, distribution_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any]:
        self.calls.append(("update_distribution", distribution_id))
        self._maybe_fail("update_distribution", distribution_id)
        self.distributions[distribution_id].update(copy.deepcopy(dict(changes)))
        return copy.deepcopy(self.distributions[distribution_id])

    def create_invalidation(
        self, distribution_id: str, paths: Sequence[str], *, reference: str | None = None
    ) -> str:
        self.calls.append(("create_invalidation", distribution_id))
        self._maybe_fail("create_invalidation", distribution_id)
        inv_id = self._next_id("I")
        self.invalidations[inv_id] = {
            "distribution_id": distribution_id,
            "paths": list(paths),
            "reference": reference,
        }
        return inv_id

    def get_invalidation_status(self, distribution_id: str, invalidation_id: str) -> str:
        self.reads.append(("get_invalidation_status", invalidation_id))
        return self.invalidation_statuses.get(invalidation_id, "completed")


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def no_sleep_retry() -> RetryPolicy:
    return RetryPolicy(attempts=3, backoff=0.0, sleep=lambda _s: None)


def site_resources() -> list[Resource]:
    """The standard store / access control / distribution / policy set."""
    return [
        AccessPolicyResource(id="site-policy", store="site-store", distribution="site-cdn"),
        DistributionResource(
            id="site-cdn",
            origin="site-store",
            origin_access_control="site-oac",
            comment="example site",
            error_responses=[
                ErrorResponse(error_code=404, response_code=404, response_page_path="/error.html")
            ],
        ),
        OriginAccessControlResource(id="site-oac", name="example-site-oac"),
        ObjectStoreResource(
            id="site-store",
            bucket_name="example-site-content",
            region="eu-west-1",
            tags={"project": "site"},
        ),
    ]


@pytest.fixture
def resources() -> list[Resource]:
    return site_resources()


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """A small asset tree: ``index.html``, ``error.html`` and ``assets/app.js``."""
    root = tmp_path / "site"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text("<h1>hello</h1>\n")
    (root / "error.html").write_text("<h1>not found</h1>\n")
    (root / "assets" / "app.js").write_text("console.log('hi');\n")
    return root
