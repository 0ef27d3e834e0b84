# tests/kube/test_labels.py
import pytest

from metalprov.api.meta import LabelSelector
from metalprov.kube import labels


def test_parse_equality_and_set_terms():
    reqs = labels.parse("zone=a, rack!=r1,tier in (gold, silver),!broken,gpu")
    assert [str(r) for r in reqs] == [
        "zone=a",
        "rack!=r1",
        "tier in (gold,silver)",
        "!broken",
        "gpu",
    ]

    assert labels.matches(reqs, {"zone": "a", "rack": "r2", "tier": "gold", "gpu": "1"})
    assert not labels.matches(reqs, {"zone": "a", "tier": "gold", "gpu": "1", "broken": "y"})
    assert not labels.matches(reqs, {"zone": "a", "rack": "r1", "tier": "gold", "gpu": "1"})


def test_empty_selector_matches_everything():
    assert labels.parse("") == []
    assert labels.matches(labels.parse(None), {"any": "thing"})
    assert labels.matches(labels.from_label_selector(LabelSelector()), {})


def test_notin_matches_missing_key():
    reqs = labels.parse("tier notin (bronze)")
    assert labels.matches(reqs, {})
    assert not labels.matches(reqs, {"tier": "bronze"})


def test_from_label_selector_model_and_dict_agree():
    model = LabelSelector.model_validate({
        "matchLabels": {"role": "worker"},
        "matchExpressions": [{"key": "zone", "operator": "In", "values": ["b", "a"]}],
    })
    as_dict = {
        "matchLabels": {"role": "worker"},
        "matchExpressions": [{"key": "zone", "operator": "In", "values": ["a", "b"]}],
    }
    assert labels.from_label_selector(model) == labels.from_label_selector(as_dict)
    assert labels.to_string(labels.from_label_selector(model)) == "role=worker,zone in (a,b)"


@pytest.mark.parametrize(
    "key,op,values",
    [
        ("", labels.EXISTS, []),
        ("a", labels.IN, []),
        ("a", labels.EXISTS, ["x"]),
        ("a", "Gt", ["1"]),
    ],
)
def test_invalid_requirements_raise(key, op, values):
    with pytest.raises(ValueError):
        labels.requirement(key, op, values)


def test_equality_selector_roundtrips_through_parse():
    sel = labels.equality_selector({"b": "2", "a": "1"})
    assert sel == "a=1,b=2"
    assert labels.matches(labels.parse(sel), {"a": "1", "b": "2", "c": "3"})
