# tests/kube/test_memory.py
import threading

import pytest

from metalprov.kube.errors import AlreadyExistsError, ConflictError, NotFoundError, is_not_found
from metalprov.kube.memory import InMemoryObjectStore
from metalprov.kube.resources import HARDWARE, TEMPLATE, TINKERBELL_MACHINE


def _template(name, **meta):
    return {
        "apiVersion": "tinkerbell.org/v1alpha1",
        "kind": "Template",
        "metadata": {"name": name, "namespace": "default", **meta},
        "spec": {"data": "x"},
        "status": {"state": "ignored"},
    }


def test_create_sets_server_fields_and_drops_status():
    store = InMemoryObjectStore()
    obj = store.create(TEMPLATE, _template("t1", resourceVersion="999", uid="client"))

    meta = obj["metadata"]
    assert meta["uid"] != "client"
    assert meta["resourceVersion"] != "999"
    assert meta["generation"] == 1
    assert "status" not in obj

    with pytest.raises(AlreadyExistsError):
        store.create(TEMPLATE, _template("t1"))


def test_get_missing_raises_not_found():
    store = InMemoryObjectStore()
    with pytest.raises(NotFoundError) as exc:
        store.get(TEMPLATE, "default", "nope")
    assert is_not_found(exc.value)


def test_is_not_found_follows_cause_chain():
    try:
        try:
            raise NotFoundError("inner")
        except NotFoundError as e:
            raise RuntimeError("outer") from e
    except RuntimeError as outer:
        assert is_not_found(outer)
    assert not is_not_found(ConflictError("x"))


def test_list_filters_by_namespace_and_selector_sorted():
    store = InMemoryObjectStore()
    for ns, name, labels in [
        ("b", "hw-2", {"role": "worker"}),
        ("a", "hw-9", {"role": "worker"}),
        ("a", "hw-1", {"role": "cp"}),
        ("a", "hw-3", {}),
    ]:
        store.add((HARDWARE, {"metadata": {"name": name, "namespace": ns, "labels": labels}}))

    everything = store.list(HARDWARE)
    assert [(o["metadata"]["namespace"], o["metadata"]["name"]) for o in everything] == [
        ("a", "hw-1"), ("a", "hw-3"), ("a", "hw-9"), ("b", "hw-2"),
    ]
    workers = store.list(HARDWARE, namespace="a", label_selector="role=worker")
    assert [o["metadata"]["name"] for o in workers] == ["hw-9"]
    unlabelled = store.list(HARDWARE, label_selector="!role")
    assert [o["metadata"]["name"] for o in unlabelled] == ["hw-3"]


def test_patch_with_stale_resource_version_conflicts():
    store = InMemoryObjectStore()
    obj = store.create(TEMPLATE, _template("t1"))
    rv = obj["metadata"]["resourceVersion"]

    store.patch(TEMPLATE, "default", "t1", {"metadata": {"resourceVersion": rv, "labels": {"a": "1"}}})
    with pytest.raises(ConflictError):
        store.patch(TEMPLATE, "default", "t1", {"metadata": {"resourceVersion": rv, "labels": {"a": "2"}}})


def test_noop_patch_keeps_resource_version():
    store = InMemoryObjectStore()
    obj = store.create(TEMPLATE, _template("t1"))
    again = store.patch(TEMPLATE, "default", "t1", {"spec": {"data": "x"}})
    assert again["metadata"]["resourceVersion"] == obj["metadata"]["resourceVersion"]
    assert again["metadata"]["generation"] == 1


def test_spec_change_bumps_generation_status_does_not():
    store = InMemoryObjectStore()
    store.create(TEMPLATE, _template("t1"))

    obj = store.patch(TEMPLATE, "default", "t1", {"spec": {"data": "y"}})
    assert obj["metadata"]["generation"] == 2

    obj = store.set_status(TEMPLATE, "default", "t1", {"state": "done"})
    assert obj["metadata"]["generation"] == 2
    assert obj["status"] == {"state": "done"}


def test_status_only_through_subresource():
    store = InMemoryObjectStore()
    store.create(TEMPLATE, _template("t1"))

    obj = store.patch(TEMPLATE, "default", "t1", {"status": {"state": "sneaky"}})
    assert "status" not in obj

    obj = store.patch(TEMPLATE, "default", "t1", {"spec": {"data": "z"}, "status": {"state": "ok"}}, subresource="status")
    assert obj["spec"]["data"] == "x"
    assert obj["status"] == {"state": "ok"}


def test_delete_waits_for_finalizers():
    store = InMemoryObjectStore()
    store.create(TINKERBELL_MACHINE, {"metadata": {"name": "m1", "namespace": "default", "finalizers": ["f"]}})

    store.delete(TINKERBELL_MACHINE, "default", "m1")
    obj = store.get(TINKERBELL_MACHINE, "default", "m1")
    assert obj["metadata"]["deletionTimestamp"]

    store.patch(TINKERBELL_MACHINE, "default", "m1", {"metadata": {"finalizers": []}})
    assert not store.exists(TINKERBELL_MACHINE, "default", "m1")


def test_delete_without_finalizers_removes():
    store = InMemoryObjectStore()
    store.create(TEMPLATE, _template("t1"))
    store.delete(TEMPLATE, "default", "t1")
    assert not store.exists(TEMPLATE, "default", "t1")
    with pytest.raises(NotFoundError):
        store.delete(TEMPLATE, "default", "t1")


def test_watch_replays_existing_then_streams_changes():
    store = InMemoryObjectStore()
    store.create(TEMPLATE, _template("t1"))
    stop = threading.Event()

    stream = store.watch(TEMPLATE, namespace="default", stop=stop, timeout_seconds=5)
    first = next(stream)
    assert (first["type"], first["object"]["metadata"]["name"]) == ("ADDED", "t1")

    store.patch(TEMPLATE, "default", "t1", {"spec": {"data": "changed"}})
    store.delete(TEMPLATE, "default", "t1")

    assert next(stream)["type"] == "MODIFIED"
    assert next(stream)["type"] == "DELETED"

    stop.set()
    assert list(stream) == []
