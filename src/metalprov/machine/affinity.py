# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/machine/affinity.py
"""
Hardware selection.

Required terms are OR-ed: a Hardware qualifies when it matches any one of
them. Preferred terms only rank qualified Hardware; every matching term adds
its (signed) weight to the Hardware's score. Highest score wins, ties go to
the lowest (namespace, name).
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from ..api.cluster import HardwareAffinity, HardwareAffinityTerm
from ..api.tinkerbell import Hardware
from ..kube import labels
from .errors import HardwareAffinityError, NoHardwareAvailableError

OWNER_NAME_LABEL = "v1alpha1.tinkerbell.org/ownerName"
OWNER_NAMESPACE_LABEL = "v1alpha1.tinkerbell.org/ownerNamespace"


def _sort_key(hw: Hardware, scores: Dict[Tuple[str, str], int]) -> Tuple[int, str, str]:
    ns = hw.namespace or ""
    return (-scores.get((ns, hw.name), 0), ns, hw.name)


def _unowned(hw: Hardware) -> bool:
    return OWNER_NAME_LABEL not in hw.labels


def _requirements(selector, where: str) -> List[labels.Requirement]:
    try:
        return labels.from_label_selector(selector)
    except ValueError as e:
        raise HardwareAffinityError(f"hardwareAffinity {where}: {e}") from e


def rank_hardware(
    candidates: Iterable[Hardware],
    affinity: Optional[HardwareAffinity] = None,
) -> List[Hardware]:
    """
    Every Hardware that satisfies *affinity*, best first.
    Hardware already carrying an owner label is never returned.
    """
    if affinity is None:
        affinity = HardwareAffinity()
    required = list(affinity.required) or [HardwareAffinityTerm()]
    required_reqs = [_requirements(term.label_selector, f"required[{i}]") for i, term in enumerate(required)]

    matched: Dict[Tuple[str, str], Hardware] = {}
    for hw in candidates:
        if not _unowned(hw):
            continue
        if any(labels.matches(reqs, hw.labels) for reqs in required_reqs):
            matched[(hw.namespace or "", hw.name)] = hw

    scores: Dict[Tuple[str, str], int] = {}
    for i, term in enumerate(affinity.preferred):
        reqs = _requirements(term.hardware_affinity_term.label_selector, f"preferred[{i}]")
        for key, hw in matched.items():
            if labels.matches(reqs, hw.labels):
                scores[key] = scores.get(key, 0) + term.weight

    return sorted(matched.values(), key=lambda hw: _sort_key(hw, scores))


def select_hardware(
    candidates: Iterable[Hardware],
    affinity: Optional[HardwareAffinity] = None,
) -> Hardware:
    ranked = rank_hardware(candidates, affinity)
    if not ranked:
        raise NoHardwareAvailableError("no hardware available")
    return ranked[0]
