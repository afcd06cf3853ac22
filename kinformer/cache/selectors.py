"""
Label selector parsing and matching.

Supports the equality and set based forms used by list/watch calls:
``a=b``, ``a==b``, ``a!=b``, ``a in (x,y)``, ``a notin (x,y)``, ``a`` and ``!a``.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Mapping, Tuple

from ..errors import ConfigurationError

_SET_RE = re.compile(r"^\s*([^\s!=]+)\s+(in|notin)\s+\(([^)]*)\)\s*$")


@dataclass(frozen=True)
class Requirement:
    """One clause of a selector"""
    key: str
    operator: str
    values: FrozenSet[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == "exists":
            return self.key in labels
        if self.operator == "!exists":
            return self.key not in labels
        if self.operator in ("=", "in"):
            return self.key in labels and labels[self.key] in self.values
        if self.operator in ("!=", "notin"):
            return self.key not in labels or labels[self.key] not in self.values
        return False


class LabelSelector:
    """Parsed label selector; an empty selector matches everything"""

    def __init__(self, requirements: Tuple[Requirement, ...] = ()):
        self.requirements = requirements

    @classmethod
    def parse(cls, selector: str) -> 'LabelSelector':
        """
        Parse a selector string.

        Raises:
            ConfigurationError: If a clause cannot be parsed
        """
        if not selector or not selector.strip():
            return cls()
        return cls(tuple(_parse_clause(clause) for clause in _split_clauses(selector)))

    @property
    def empty(self) -> bool:
        return not self.requirements

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        return ",".join(_format(req) for req in self.requirements)


def _split_clauses(selector: str) -> List[str]:
    # Commas inside "(...)" belong to a set clause
    clauses, depth, current = [], 0, []
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            clauses.append("".join(current))
            current = []
        else:
            current.append(char)
    clauses.append("".join(current))
    return [clause.strip() for clause in clauses if clause.strip()]


def _parse_clause(clause: str) -> Requirement:
    match = _SET_RE.match(clause)
    if match:
        key, operator, raw_values = match.groups()
        values = frozenset(v.strip() for v in raw_values.split(",") if v.strip())
        return Requirement(key, operator, values)

    for token, operator in (("!=", "!="), ("==", "="), ("=", "=")):
        if token in clause:
            key, _, value = clause.partition(token)
            key, value = key.strip(), value.strip()
            if not key or any(c in value for c in "=!() "):
                raise ConfigurationError(f"invalid label selector clause: {clause!r}")
            return Requirement(key, operator, frozenset([value]))

    if clause.startswith("!"):
        key = clause[1:].strip()
        if key and " " not in key:
            return Requirement(key, "!exists")
    elif " " not in clause:
        return Requirement(clause, "exists")

    raise ConfigurationError(f"invalid label selector clause: {clause!r}")


def _format(req: Requirement) -> str:
    if req.operator == "exists":
        return req.key
    if req.operator == "!exists":
        return f"!{req.key}"
    if req.operator in ("in", "notin"):
        return f"{req.key} {req.operator} ({','.join(sorted(req.values))})"
    return f"{req.key}{req.operator}{next(iter(req.values))}"
