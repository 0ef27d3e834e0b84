# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/kube/labels.py
"""
Kubernetes label selectors.

Two representations are handled:
  - the structured form found in object specs (matchLabels + matchExpressions)
  - the string form the API server accepts as ?labelSelector=

Both are converted into a list of Requirement so that the in-memory store,
the affinity scorer and the real API all agree on what a selector means.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Tuple

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"

_SET_RE = re.compile(r"^(?P<key>[^\s!=()]+)\s+(?P<op>in|notin)\s*\((?P<values>[^)]*)\)$")


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: Tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator == EXISTS:
            return present
        if self.operator == DOES_NOT_EXIST:
            return not present
        if self.operator == IN:
            return present and labels[self.key] in self.values
        if self.operator == NOT_IN:
            return not present or labels[self.key] not in self.values
        raise ValueError(f"unknown selector operator {self.operator!r}")

    def __str__(self) -> str:
        if self.operator == EXISTS:
            return self.key
        if self.operator == DOES_NOT_EXIST:
            return f"!{self.key}"
        if len(self.values) == 1:
            sep = "=" if self.operator == IN else "!="
            return f"{self.key}{sep}{self.values[0]}"
        op = "in" if self.operator == IN else "notin"
        return f"{self.key} {op} ({','.join(self.values)})"


def requirement(key: str, operator: str, values: Iterable[str] = ()) -> Requirement:
    values = tuple(sorted(values))
    if not key:
        raise ValueError("label selector key can't be empty")
    if operator in (IN, NOT_IN):
        if not values:
            raise ValueError(f"{operator} requirement for {key!r} needs at least one value")
    elif operator in (EXISTS, DOES_NOT_EXIST):
        if values:
            raise ValueError(f"{operator} requirement for {key!r} must not have values")
    else:
        raise ValueError(f"unknown selector operator {operator!r}")
    return Requirement(key=key, operator=operator, values=values)


def from_label_selector(selector) -> List[Requirement]:
    """
    Convert a structured LabelSelector (api.meta.LabelSelector or a plain
    dict with matchLabels/matchExpressions) into requirements.

    An empty selector yields no requirements and therefore matches everything.
    """
    if selector is None:
        return []

    if isinstance(selector, Mapping):
        match_labels = selector.get("matchLabels") or {}
        expressions = selector.get("matchExpressions") or []
        exprs = [
            (e.get("key", ""), e.get("operator", ""), e.get("values") or [])
            for e in expressions
        ]
    else:
        match_labels = selector.match_labels or {}
        exprs = [(e.key, e.operator, e.values or []) for e in (selector.match_expressions or [])]

    reqs = [requirement(k, IN, [v]) for k, v in sorted(match_labels.items())]
    reqs += [requirement(k, op, vals) for k, op, vals in exprs]
    return reqs


def _split_terms(selector: str) -> List[str]:
    terms, depth, current = [], 0, []
    for ch in selector:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            terms.append("".join(current))
            current = []
            continue
        current.append(ch)
    terms.append("".join(current))
    return [t.strip() for t in terms if t.strip()]


def parse(selector: Optional[str]) -> List[Requirement]:
    """Parse the string form, e.g. 'a=b,c!=d,e in (x,y),!f'."""
    if not selector:
        return []

    reqs: List[Requirement] = []
    for term in _split_terms(selector):
        m = _SET_RE.match(term)
        if m:
            values = [v.strip() for v in m.group("values").split(",") if v.strip()]
            op = IN if m.group("op") == "in" else NOT_IN
            reqs.append(requirement(m.group("key"), op, values))
        elif term.startswith("!") and "=" not in term:
            reqs.append(requirement(term[1:].strip(), DOES_NOT_EXIST))
        elif "!=" in term:
            key, value = term.split("!=", 1)
            reqs.append(requirement(key.strip(), NOT_IN, [value.strip()]))
        elif "==" in term:
            key, value = term.split("==", 1)
            reqs.append(requirement(key.strip(), IN, [value.strip()]))
        elif "=" in term:
            key, value = term.split("=", 1)
            reqs.append(requirement(key.strip(), IN, [value.strip()]))
        else:
            reqs.append(requirement(term, EXISTS))
    return reqs


def to_string(reqs: Iterable[Requirement]) -> str:
    return ",".join(str(r) for r in reqs)


def matches(reqs: Iterable[Requirement], labels: Optional[Mapping[str, str]]) -> bool:
    labels = labels or {}
    return all(r.matches(labels) for r in reqs)


def equality_selector(labels: Mapping[str, str]) -> str:
    """Selector string matching every key=value pair in *labels*."""
    return to_string(requirement(k, IN, [v]) for k, v in sorted(labels.items()))
