"""Kubernetes label selectors.

Supports the equality and set based grammar accepted by ``kubectl -l``::

    app=web,tier!=cache,env in (prod,staging),!canary,track
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum


class SelectorError(ValueError):
    """Raised for label selector text that cannot be parsed."""


class Operator(StrEnum):
    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


_KEY = r"[A-Za-z0-9]([-A-Za-z0-9_./]*[A-Za-z0-9])?"
_VALUE = r"([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)?"

_SET_RE = re.compile(rf"^(?P<key>{_KEY})\s+(?P<op>in|notin)\s*\((?P<values>[^)]*)\)$")
_EQ_RE = re.compile(rf"^(?P<key>{_KEY})\s*(?P<op>==|=|!=)\s*(?P<value>{_VALUE})$")
_EXISTS_RE = re.compile(rf"^(?P<neg>!)?\s*(?P<key>{_KEY})$")
_VALUE_RE = re.compile(rf"^{_VALUE}$")


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator is Operator.EXISTS:
            return self.key in labels
        if self.operator is Operator.DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator in (Operator.EQUALS, Operator.IN):
            return self.key in labels and labels[self.key] in self.values
        # != and notin also match objects that lack the key entirely
        return self.key not in labels or labels[self.key] not in self.values

    def __str__(self) -> str:
        if self.operator is Operator.EXISTS:
            return self.key
        if self.operator is Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if self.operator in (Operator.EQUALS, Operator.NOT_EQUALS):
            return f"{self.key}{self.operator.value}{self.values[0]}"
        return f"{self.key} {self.operator.value} ({','.join(self.values)})"


class Selector:
    """A conjunction of label requirements. The empty selector matches everything."""

    def __init__(self, requirements: tuple[Requirement, ...] = ()) -> None:
        self._requirements = requirements

    @classmethod
    def everything(cls) -> Selector:
        return cls()

    @classmethod
    def from_labels(cls, labels: Mapping[str, str]) -> Selector:
        """Build an equality selector requiring every given label."""
        return cls(tuple(Requirement(k, Operator.EQUALS, (v,)) for k, v in sorted(labels.items())))

    @classmethod
    def parse(cls, text: str) -> Selector:
        """Parse selector text; raises :class:`SelectorError` on bad input."""
        text = text.strip()
        if not text:
            return cls()
        return cls(tuple(_parse_requirement(term) for term in _split_terms(text)))

    @property
    def requirements(self) -> tuple[Requirement, ...]:
        return self._requirements

    def empty(self) -> bool:
        return not self._requirements

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(req.matches(labels) for req in self._requirements)

    def __str__(self) -> str:
        return ",".join(str(req) for req in self._requirements)

    def __repr__(self) -> str:
        return f"Selector({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Selector):
            return NotImplemented
        return self._requirements == other._requirements

    def __hash__(self) -> int:
        return hash(self._requirements)


def _split_terms(text: str) -> list[str]:
    """Split on commas that are not inside a ``( ... )`` value set."""
    terms: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorError(f"unbalanced parenthesis in selector {text!r}")
        if char == "," and depth == 0:
            terms.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if depth != 0:
        raise SelectorError(f"unbalanced parenthesis in selector {text!r}")
    terms.append("".join(current).strip())
    if any(not term for term in terms):
        raise SelectorError(f"empty requirement in selector {text!r}")
    return terms


def _parse_requirement(term: str) -> Requirement:
    match = _SET_RE.match(term)
    if match:
        values = tuple(v.strip() for v in match.group("values").split(","))
        if not values or any(not v or not _VALUE_RE.match(v) for v in values):
            raise SelectorError(f"invalid value set in requirement {term!r}")
        op = Operator.IN if match.group("op") == "in" else Operator.NOT_IN
        return Requirement(match.group("key"), op, values)

    match = _EQ_RE.match(term)
    if match:
        op = Operator.NOT_EQUALS if match.group("op") == "!=" else Operator.EQUALS
        return Requirement(match.group("key"), op, (match.group("value"),))

    match = _EXISTS_RE.match(term)
    if match:
        op = Operator.DOES_NOT_EXIST if match.group("neg") else Operator.EXISTS
        return Requirement(match.group("key"), op)

    raise SelectorError(f"invalid requirement {term!r}")
