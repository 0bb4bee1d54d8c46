from __future__ import annotations

from edge_provisioner.publish.plan import PublishPlan, build_publish_plan


def test_upload_changed_and_new_delete_remote_only() -> None:
    plan = build_publish_plan({"a": "h1", "b": "h2"}, {"b": "h2", "c": "h3"})

    assert plan.to_upload == {"a"}
    assert plan.to_delete == {"c"}
    assert plan.unchanged == {"b"}
    assert plan.invalidation_paths == {"a", "c"}


def test_changed_fingerprint_is_uploaded() -> None:
    plan = build_publish_plan({"a": "new"}, {"a": "old"})
    assert plan.to_upload == {"a"}
    assert plan.unchanged == frozenset()


def test_identical_manifests_have_no_changes() -> None:
    plan = build_publish_plan({"a": "h1"}, {"a": "h1"})
    assert not plan.has_changes
    assert plan.invalidation_paths == frozenset()
    assert plan.summary() == {"upload": 0, "delete": 0, "unchanged": 1}


def test_keep_remote_only_objects_when_delete_disabled() -> None:
    plan = build_publish_plan({"a": "h1"}, {"a": "h1", "old": "h0"}, delete=False)
    assert plan.to_delete == frozenset()
    assert not plan.has_changes


def test_empty_local_deletes_everything() -> None:
    plan = build_publish_plan({}, {"a": "h1", "b": "h2"})
    assert plan.to_delete == {"a", "b"}
    assert plan.to_upload == frozenset()


def test_restricted_to_succeeded_keys() -> None:
    plan = PublishPlan(to_upload=frozenset({"x", "y"}), to_delete=frozenset({"z"}))
    assert plan.restricted_to(["y", "unrelated"]) == {"y"}


def test_invalidation_paths_serialized() -> None:
    plan = PublishPlan(to_upload=frozenset({"x"}))
    dumped = plan.model_dump(mode="json")
    assert dumped["invalidation_paths"] == ["x"]
