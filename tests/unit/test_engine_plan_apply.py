from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from edge_provisioner.config.registry import default_registry
from edge_provisioner.engine.reconciler import Reconciler, _values_differ
from edge_provisioner.engine.references import KNOWN_AFTER_APPLY
from edge_provisioner.engine.types import Action, Plan
from edge_provisioner.errors import (
    ConfigurationError,
    ImmutablePropertyError,
    OperationCanceled,
    ProviderError,
    ProviderUnavailableError,
    ResourceApplyError,
)
from edge_provisioner.publish.cancel import CancelToken
from edge_provisioner.resources import (
    AccessPolicyResource,
    DistributionResource,
    ObjectStoreResource,
)

if TYPE_CHECKING:
    from pathlib import Path

    from edge_provisioner.engine.retry import RetryPolicy
    from edge_provisioner.resources.base import Resource
    from tests.unit.conftest import FakeProvider

SITE_ORDER = ["site-store", "site-oac", "site-cdn", "site-policy"]


def _reconciler(provider: FakeProvider, retry: RetryPolicy) -> Reconciler:
    return Reconciler(provider=provider, registry=default_registry(), retry=retry)


def _replace(resources: list[Resource], new: Resource) -> list[Resource]:
    return [new if r.id == new.id else r for r in resources]


def _store(**overrides: Any) -> ObjectStoreResource:
    fields: dict[str, Any] = {
        "id": "site-store",
        "bucket_name": "example-site-content",
        "region": "eu-west-1",
        "tags": {"project": "site"},
    }
    fields.update(overrides)
    return ObjectStoreResource(**fields)


class TestReconcileFresh:
    def test_creates_everything_in_dependency_order(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        result = _reconciler(fake_provider, no_sleep_retry).reconcile(resources)

        assert result.order == SITE_ORDER
        assert fake_provider.calls == [
            ("create_store", "example-site-content"),
            ("create_origin_access_control", "example-site-oac"),
            ("create_distribution", "site-cdn"),
            ("set_policy", "example-site-content"),
        ]
        assert result.applied == SITE_ORDER
        assert result.converged == SITE_ORDER
        assert result.summary() == {"create": 4, "update": 0, "no-op": 0}

    def test_references_resolve_to_outputs_of_earlier_resources(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        result = _reconciler(fake_provider, no_sleep_retry).reconcile(resources)

        oac_id = result.states["site-oac"].output("id")
        dist = result.states["site-cdn"]
        assert dist.output("origin") == "example-site-content.s3.eu-west-1.amazonaws.com"
        assert dist.output("origin_access_control") == oac_id

        policy = fake_provider.policies["example-site-content"]
        statement = policy["Statement"][0]
        assert statement["Resource"] == "arn:aws:s3:::example-site-content/*"
        assert statement["Condition"]["StringEquals"]["AWS:SourceArn"] == dist.output("arn")

    def test_second_run_makes_no_mutating_calls(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        reconciler.reconcile(resources)
        fake_provider.calls.clear()

        result = reconciler.reconcile(resources)

        assert fake_provider.calls == []
        assert result.changes == []
        assert result.converged == SITE_ORDER

    def test_progress_reports_start_done_and_unchanged(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        events: list[tuple[str, str]] = []
        reconciler.reconcile(resources, progress=lambda c, e: events.append((c.id, e)))
        assert events[:2] == [("site-store", "start"), ("site-store", "done")]

        events.clear()
        reconciler.reconcile(resources, progress=lambda c, e: events.append((c.id, e)))
        assert events == [(rid, "unchanged") for rid in SITE_ORDER]


class TestPlan:
    def test_fresh_plan_uses_placeholders_and_mutates_nothing(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        plan = _reconciler(fake_provider, no_sleep_retry).plan(resources)

        assert [c.id for c in plan.changes] == SITE_ORDER
        assert all(c.action is Action.CREATE for c in plan.changes)
        assert fake_provider.calls == []

        cdn = plan.changes[2]
        assert cdn.planned is not None
        assert cdn.planned["origin"] == KNOWN_AFTER_APPLY
        assert cdn.planned["origin_access_control"] == KNOWN_AFTER_APPLY

    def test_plan_after_apply_is_all_noop(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        reconciler.reconcile(resources)

        plan = reconciler.plan(resources)

        assert plan.summary() == {"create": 0, "update": 0, "no-op": 4}

    def test_plan_roundtrips_through_json(
        self,
        tmp_path: Path,
        fake_provider: FakeProvider,
        no_sleep_retry: RetryPolicy,
        resources: list[Resource],
    ) -> None:
        plan = _reconciler(fake_provider, no_sleep_retry).plan(resources)
        path = tmp_path / "out" / "plan.json"
        plan.save(path)

        loaded = Plan.load(path)

        assert [c.id for c in loaded.changes] == SITE_ORDER
        assert loaded.summary() == plan.summary()

    def test_invalid_descriptor_set_fails_before_any_read(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy
    ) -> None:
        resources = [
            AccessPolicyResource(id="policy", store="missing-store"),
        ]
        with pytest.raises(ConfigurationError, match="unknown id 'missing-store'"):
            _reconciler(fake_provider, no_sleep_retry).plan(resources)
        assert fake_provider.reads == []

    def test_handler_validation_errors_are_reported_together(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        cdn = DistributionResource(
            id="site-cdn", origin="site-store", default_root_object="/index.html"
        )
        policy = AccessPolicyResource(
            id="site-policy", store="site-store", statements=[{"Effect": "Allow"}]
        )
        bad = _replace(_replace(resources, cdn), policy)

        with pytest.raises(ConfigurationError) as exc_info:
            _reconciler(fake_provider, no_sleep_retry).plan(bad)

        message = str(exc_info.value)
        assert "default_root_object" in message
        assert "must define Effect and Action" in message
        assert fake_provider.reads == []


class TestUpdates:
    def test_tag_change_updates_only_the_store(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        reconciler.reconcile(resources)
        fake_provider.calls.clear()

        changed = _replace(resources, _store(tags={"project": "site", "env": "prod"}))
        result = reconciler.reconcile(changed)

        assert fake_provider.calls == [("update_store", "example-site-content")]
        assert [c.id for c in result.changes] == ["site-store"]
        assert result.changes[0].changed_properties() == {
            "tags": {"project": "site", "env": "prod"}
        }

    def test_extra_remote_tags_are_ignored(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        reconciler.reconcile(resources)
        fake_provider.stores["example-site-content"]["tags"]["team"] = "web"

        plan = reconciler.plan(resources)

        assert plan.changes[0].action is Action.NOOP

    def test_remote_drift_is_corrected(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        reconciler.reconcile(resources)
        dist_id = next(iter(fake_provider.distributions))
        fake_provider.distributions[dist_id]["comment"] = "edited by hand"
        fake_provider.calls.clear()

        reconciler.reconcile(resources)

        assert fake_provider.calls == [("update_distribution", dist_id)]
        assert fake_provider.distributions[dist_id]["comment"] == "example site"

    def test_immutable_change_is_rejected_without_calls(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        reconciler.reconcile(resources)
        fake_provider.calls.clear()

        with pytest.raises(ImmutablePropertyError, match="region"):
            reconciler.reconcile(_replace(resources, _store(region="us-east-1")))
        assert fake_provider.calls == []

    def test_untagged_store_is_adopted(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy
    ) -> None:
        fake_provider.stores["example-site-content"] = {
            "bucket_name": "example-site-content",
            "region": "eu-west-1",
            "versioning": False,
            "block_public_access": True,
            "tags": {"project": "site"},
            "owner": None,
            "name": "example-site-content",
            "arn": "arn:aws:s3:::example-site-content",
            "regional_domain_name": "example-site-content.s3.eu-west-1.amazonaws.com",
        }

        result = _reconciler(fake_provider, no_sleep_retry).reconcile([_store()])

        assert fake_provider.calls == [("update_store", "example-site-content")]
        assert result.changes[0].changed_properties() == {"owner": "site-store"}
        assert fake_provider.stores["example-site-content"]["owner"] == "site-store"


class TestFailures:
    def test_apply_failure_names_converged_and_pending_resources(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        cause = ProviderError("cloudfront.create_distribution", "AccessDenied")
        fake_provider.fail("create_distribution", cause, key="site-cdn")

        with pytest.raises(ResourceApplyError) as exc_info:
            _reconciler(fake_provider, no_sleep_retry).reconcile(resources)

        err = exc_info.value
        assert err.resource_id == "site-cdn"
        assert err.applied == ["site-store", "site-oac"]
        assert err.not_attempted == ["site-policy"]
        assert err.__cause__ is cause
        assert ("set_policy", "example-site-content") not in fake_provider.calls

    def test_rerun_after_failure_completes_without_duplicates(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        reconciler = _reconciler(fake_provider, no_sleep_retry)
        fake_provider.fail(
            "create_distribution", ProviderError("cloudfront.create_distribution", "boom")
        )
        with pytest.raises(ResourceApplyError):
            reconciler.reconcile(resources)
        fake_provider.calls.clear()

        reconciler.reconcile(resources)

        assert fake_provider.calls == [
            ("create_distribution", "site-cdn"),
            ("set_policy", "example-site-content"),
        ]
        assert len(fake_provider.stores) == 1
        assert len(fake_provider.oacs) == 1

    def test_transient_read_failures_are_retried(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        fake_provider.fail(
            "find_store", ProviderUnavailableError("s3.head_bucket", "throttled"), times=2
        )

        result = _reconciler(fake_provider, no_sleep_retry).reconcile(resources)

        assert result.converged == SITE_ORDER
        assert fake_provider.reads.count(("find_store", "site-store")) == 3

    def test_persistent_read_failure_propagates(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        fake_provider.fail(
            "find_store", ProviderUnavailableError("s3.head_bucket", "throttled"), times=5
        )

        with pytest.raises(ProviderUnavailableError):
            _reconciler(fake_provider, no_sleep_retry).reconcile(resources)
        assert fake_provider.calls == []

    def test_cancel_before_start_attempts_nothing(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCanceled, match="site-store"):
            _reconciler(fake_provider, no_sleep_retry).reconcile(resources, cancel=token)
        assert fake_provider.calls == []

    def test_cancel_mid_run_stops_between_resources(
        self, fake_provider: FakeProvider, no_sleep_retry: RetryPolicy, resources: list[Resource]
    ) -> None:
        token = CancelToken()

        def progress(change: Any, event: str) -> None:
            if change.id == "site-oac" and event == "done":
                token.cancel()

        with pytest.raises(OperationCanceled, match="site-cdn, site-policy"):
            _reconciler(fake_provider, no_sleep_retry).reconcile(
                resources, progress=progress, cancel=token
            )
        assert [c[0] for c in fake_provider.calls] == [
            "create_store",
            "create_origin_access_control",
        ]


class TestValuesDiffer:
    """Tests for _values_differ comparison semantics."""

    def test_equal_scalars(self) -> None:
        assert _values_differ(1, 1) is False

    def test_different_scalars(self) -> None:
        assert _values_differ("a", "b") is True

    def test_dict_ignores_extra_prior_keys(self) -> None:
        assert _values_differ({"a": "1"}, {"a": "1", "b": "2"}) is False

    def test_dict_detects_changed_declared_key(self) -> None:
        assert _values_differ({"a": "1"}, {"a": "2"}) is True

    def test_dict_detects_missing_key_in_prior(self) -> None:
        assert _values_differ({"a": "1"}, {}) is True

    def test_dict_vs_none_prior(self) -> None:
        assert _values_differ({"a": "1"}, None) is True

    def test_exact_treats_extra_keys_as_difference(self) -> None:
        assert _values_differ({"a": 1}, {"a": 1, "b": 2}, strategy="exact") is True

    def test_set_ignores_order(self) -> None:
        assert _values_differ(["a", "b"], ["b", "a"], strategy="set") is False

    def test_set_detects_membership_change(self) -> None:
        assert _values_differ(["a", "b"], ["a"], strategy="set") is True

    def test_lists_use_strict_equality_by_default(self) -> None:
        assert _values_differ(["a", "b"], ["b", "a"]) is True
