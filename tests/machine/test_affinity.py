# tests/machine/test_affinity.py
import pytest

from metalprov.api.cluster import HardwareAffinity
from metalprov.api.tinkerbell import Hardware
from metalprov.machine.affinity import OWNER_NAME_LABEL, rank_hardware, select_hardware
from metalprov.machine.errors import HardwareAffinityError, NoHardwareAvailableError


def hw(name, ns="default", **labels):
    return Hardware.model_validate({"metadata": {"name": name, "namespace": ns, "labels": labels}})


def affinity(required=(), preferred=()):
    return HardwareAffinity.model_validate({
        "required": [{"labelSelector": sel} for sel in required],
        "preferred": [
            {"weight": w, "hardwareAffinityTerm": {"labelSelector": sel}} for w, sel in preferred
        ],
    })


def names(items):
    return [h.name for h in items]


def test_no_affinity_picks_lowest_namespace_then_name():
    candidates = [hw("b", ns="ns2"), hw("c"), hw("a", ns="ns2")]
    assert names(rank_hardware(candidates)) == ["c", "a", "b"]
    assert select_hardware(candidates).name == "c"


def test_required_terms_are_ored():
    candidates = [hw("a", zone="x"), hw("b", zone="y"), hw("c", zone="z")]
    aff = affinity(required=[{"matchLabels": {"zone": "x"}}, {"matchLabels": {"zone": "z"}}])
    assert names(rank_hardware(candidates, aff)) == ["a", "c"]


def test_higher_preferred_weight_wins_over_name_order():
    candidates = [hw("A", tier="gold"), hw("B", tier="platinum")]
    aff = affinity(preferred=[(10, {"matchLabels": {"tier": "gold"}}), (20, {"matchLabels": {"tier": "platinum"}})])
    assert select_hardware(candidates, aff).name == "B"


def test_preferred_weights_accumulate():
    candidates = [hw("a", ssd="1"), hw("b", ssd="1", gpu="1"), hw("c", gpu="1")]
    aff = affinity(preferred=[
        (5, {"matchLabels": {"ssd": "1"}}),
        (5, {"matchLabels": {"gpu": "1"}}),
    ])
    assert names(rank_hardware(candidates, aff)) == ["b", "a", "c"]


def test_negative_weights_push_down():
    candidates = [hw("a", flaky="1"), hw("b")]
    aff = affinity(preferred=[(-50, {"matchExpressions": [{"key": "flaky", "operator": "Exists"}]})])
    assert names(rank_hardware(candidates, aff)) == ["b", "a"]


def test_owned_hardware_is_never_selected():
    candidates = [hw("a", **{OWNER_NAME_LABEL: "other"}), hw("b")]
    assert names(rank_hardware(candidates)) == ["b"]

    with pytest.raises(NoHardwareAvailableError):
        select_hardware([hw("a", **{OWNER_NAME_LABEL: "other"})])


def test_duplicates_collapse():
    candidates = [hw("a"), hw("a"), hw("a", ns="other")]
    assert [(h.namespace, h.name) for h in rank_hardware(candidates)] == [("default", "a"), ("other", "a")]


def test_no_match_raises():
    with pytest.raises(NoHardwareAvailableError):
        select_hardware([hw("a", zone="x")], affinity(required=[{"matchLabels": {"zone": "nope"}}]))
    with pytest.raises(NoHardwareAvailableError):
        select_hardware([])


def test_selection_ignores_input_order():
    candidates = [hw("c", t="1"), hw("a"), hw("b", t="1")]
    aff = affinity(preferred=[(1, {"matchLabels": {"t": "1"}})])
    assert select_hardware(candidates, aff).name == select_hardware(list(reversed(candidates)), aff).name == "b"


@pytest.mark.parametrize(
    "selector",
    [
        {"matchExpressions": [{"key": "type", "operator": "Near", "values": ["x"]}]},
        {"matchExpressions": [{"key": "type", "operator": "In"}]},
        {"matchExpressions": [{"key": "type", "operator": "Exists", "values": ["x"]}]},
    ],
)
def test_invalid_required_selector_is_terminal(selector):
    with pytest.raises(HardwareAffinityError, match=r"required\[0\]"):
        rank_hardware([hw("a", type="x")], affinity(required=[selector]))


def test_invalid_preferred_selector_is_terminal():
    bad = {"matchExpressions": [{"key": "", "operator": "Exists"}]}
    with pytest.raises(HardwareAffinityError, match=r"preferred\[0\]"):
        select_hardware([hw("a")], affinity(preferred=[(10, bad)]))
