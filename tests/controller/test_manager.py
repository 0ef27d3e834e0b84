# tests/controller/test_manager.py
import time

from metalprov.config.models import ControllerConfig
from metalprov.controller.manager import Manager
from metalprov.controller.queue import WorkQueue
from metalprov.kube.resources import (
    CAPI_CLUSTER,
    CAPI_MACHINE,
    TINKERBELL_CLUSTER,
    TINKERBELL_MACHINE,
    WORKFLOW,
    ObjectKey,
)
from metalprov.machine.controller import (
    ReconcileResult,
    cluster_machines_mapper,
    controlled_by_tinkerbell_machine,
    machine_to_tinkerbell_machine,
)

KEY = ObjectKey("default", "m1")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeReconciler:
    def __init__(self, outcomes=None, config=None):
        self.config = config or ControllerConfig()
        self.outcomes = outcomes or {}
        self.calls = []

    def reconcile(self, key):
        self.calls.append(key)
        outcome = self.outcomes.get(key)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or ReconcileResult()

    def watches(self):
        return []


def _manager(store, reconciler, clock=None):
    queue = WorkQueue(backoff_base=2.0, backoff_max=60.0, clock=clock or FakeClock())
    return Manager(store, reconciler, queue=queue)


# ---------------------------------------------------------------------
# Event mapping
# ---------------------------------------------------------------------

def test_capi_machine_maps_to_its_infrastructure_machine(world):
    capi = world.add_capi_machine("m1")
    assert machine_to_tinkerbell_machine(capi) == [KEY]

    capi["spec"]["infrastructureRef"]["kind"] = "Metal3Machine"
    assert machine_to_tinkerbell_machine(capi) == []


def test_owned_objects_map_to_their_controller():
    wf = {
        "metadata": {
            "name": "m1",
            "namespace": "default",
            "ownerReferences": [
                {"apiVersion": "infrastructure.cluster.x-k8s.io/v1beta1", "kind": "TinkerbellMachine",
                 "name": "m1", "controller": True},
            ],
        }
    }
    assert controlled_by_tinkerbell_machine(wf) == [KEY]

    wf["metadata"]["ownerReferences"][0]["controller"] = None
    assert controlled_by_tinkerbell_machine(wf) == []


def test_cluster_events_fan_out_to_member_machines(world):
    world.add_cluster()
    world.add_machine("m1")
    world.add_machine("m2")
    world.add_machine("m3")
    world.store.patch(
        TINKERBELL_MACHINE, "default", "m3",
        {"metadata": {"labels": {"cluster.x-k8s.io/cluster-name": "c2"}}},
    )
    mapper = cluster_machines_mapper(world.store)
    expected = [ObjectKey("default", "m1"), ObjectKey("default", "m2")]

    cluster = world.store.get(CAPI_CLUSTER, "default", "c1")
    assert mapper(cluster) == expected
    tb_cluster = world.store.get(TINKERBELL_CLUSTER, "default", "c1")
    assert mapper(tb_cluster) == expected


def test_handle_event_enqueues_and_applies_watch_filter(world):
    world.config = world.config.model_copy(update={"watch_filter_value": "team-a"})
    m = _manager(world.store, world.reconciler())

    unlabelled = world.add_machine("m1")
    assert m.handle_event(TINKERBELL_MACHINE, lambda o: [KEY], {"type": "ADDED", "object": unlabelled}) == []

    unlabelled["metadata"]["labels"]["cluster.x-k8s.io/watch-filter"] = "team-a"
    assert m.handle_event(TINKERBELL_MACHINE, lambda o: [KEY], {"type": "ADDED", "object": unlabelled}) == [KEY]
    assert len(m.queue) == 1


def test_handle_event_survives_a_broken_mapper(world):
    m = _manager(world.store, FakeReconciler())

    def broken(obj):
        raise KeyError("name")

    assert m.handle_event(WORKFLOW, broken, {"type": "ADDED", "object": {}}) == []
    assert len(m.queue) == 0


def test_resync_queues_every_machine(world):
    world.add_machine("m1")
    world.add_machine("m2")
    m = _manager(world.store, FakeReconciler())

    assert m.resync() == 2
    assert len(m.queue) == 2


# ---------------------------------------------------------------------
# Worker outcomes
# ---------------------------------------------------------------------

def test_success_forgets_failures(world):
    reconciler = FakeReconciler()
    m = _manager(world.store, reconciler)
    m.queue.add(KEY)
    m.queue.add_rate_limited(KEY)

    assert m.process_next(timeout=0) is True
    assert reconciler.calls == [KEY]
    assert m.queue.num_requeues(KEY) == 0


def test_failure_requeues_with_backoff(world):
    clock = FakeClock()
    reconciler = FakeReconciler({KEY: RuntimeError("boom")})
    m = _manager(world.store, reconciler, clock)
    m.queue.add(KEY)

    assert m.process_next(timeout=0) is True
    assert m.queue.num_requeues(KEY) == 1
    assert m.process_next(timeout=0) is False

    clock.now += 2.0
    assert m.process_next(timeout=0) is True
    assert m.queue.num_requeues(KEY) == 2
    assert reconciler.calls == [KEY, KEY]


def test_requeue_after_is_honoured(world):
    clock = FakeClock()
    reconciler = FakeReconciler({KEY: ReconcileResult(requeue_after=30.0)})
    m = _manager(world.store, reconciler, clock)
    m.queue.add(KEY)

    m.process_next(timeout=0)
    assert m.process_next(timeout=0) is False

    clock.now += 30.0
    assert m.process_next(timeout=0) is True
    assert reconciler.calls == [KEY, KEY]


def test_an_empty_injected_queue_is_kept(world):
    queue = WorkQueue(backoff_base=2.0, clock=FakeClock())
    assert len(queue) == 0

    m = Manager(world.store, FakeReconciler(), queue=queue)

    assert m.queue is queue
    m.queue.add(KEY)
    assert m.process_next(timeout=0) is True


def test_empty_queue_returns_false(world):
    m = _manager(world.store, FakeReconciler())
    assert m.process_next(timeout=0) is False


# ---------------------------------------------------------------------
# Running against the in-memory store
# ---------------------------------------------------------------------

def test_manager_provisions_from_watch_events(world):
    world.config = world.config.model_copy(update={"workers": 2, "watch_timeout_seconds": 5})
    world.add_cluster()
    world.add_hardware("hw-a")
    world.add_ready_machine("m1")

    m = Manager(world.store, world.reconciler())
    m.start()
    try:
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline and not world.store.exists(WORKFLOW, "default", "m1"):
            time.sleep(0.05)
    finally:
        m.stop()

    assert world.store.exists(WORKFLOW, "default", "m1")
    assert world.machine("m1").spec.hardware_name == "hw-a"
    assert world.store.exists(CAPI_MACHINE, "default", "m1")
