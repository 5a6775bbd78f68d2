"""Label selectors used to match a platform against os/arch labels."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"

_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]\Z")
_DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*\Z")


class SelectorError(ValueError):
    """Raised for a selector that cannot be compiled."""


def _check_key(key: str) -> None:
    prefix, sep, name = key.rpartition("/")
    if sep and (not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN_RE.match(prefix)):
        raise SelectorError(f"invalid label key {key!r}: bad prefix")
    if not name or len(name) > 63 or not _NAME_RE.match(name):
        raise SelectorError(f"invalid label key {key!r}")


def _check_value(value: str) -> None:
    if value and (len(value) > 63 or not _NAME_RE.match(value)):
        raise SelectorError(f"invalid label value {value!r}")


@dataclass
class LabelSelectorRequirement:
    """One expression of a selector: key, operator and values."""

    key: str
    operator: str
    values: list[str] = field(default_factory=list)

    def _validate(self) -> None:
        _check_key(self.key)
        if self.operator in (IN, NOT_IN):
            if not self.values:
                raise SelectorError(f"for {self.operator!r} operator, values set can't be empty")
        elif self.operator in (EXISTS, DOES_NOT_EXIST):
            if self.values:
                raise SelectorError(f"values set must be empty for {self.operator!r} operator")
        else:
            raise SelectorError(f"{self.operator!r} is not a valid label selector operator")
        for value in self.values:
            _check_value(value)

    def _matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator == IN:
            return present and labels[self.key] in self.values
        if self.operator == NOT_IN:
            return not present or labels[self.key] not in self.values
        if self.operator == EXISTS:
            return present
        return not present


@dataclass
class LabelSelector:
    """Equality labels and set-based expressions; all must match."""

    match_labels: dict[str, str] | None = None
    match_expressions: list[LabelSelectorRequirement] | None = None

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Return whether ``labels`` satisfy the selector; empty matches all."""
        for key, value in (self.match_labels or {}).items():
            _check_key(key)
            _check_value(value)
        for requirement in self.match_expressions or []:
            requirement._validate()

        for key, value in (self.match_labels or {}).items():
            if labels.get(key) != value:
                return False
        return all(r._matches(labels) for r in self.match_expressions or [])

    def to_dict(self) -> dict:
        """Return the manifest form, leaving out empty parts."""
        out: dict = {}
        if self.match_labels:
            out["matchLabels"] = dict(self.match_labels)
        if self.match_expressions:
            expressions = []
            for r in self.match_expressions:
                item: dict = {"key": r.key, "operator": r.operator}
                if r.values:
                    item["values"] = list(r.values)
                expressions.append(item)
            out["matchExpressions"] = expressions
        return out

    @classmethod
    def from_dict(cls, data: Mapping) -> LabelSelector:
        """Build a selector from its manifest form."""
        if not isinstance(data, Mapping):
            raise SelectorError(f"selector must be a mapping, got {type(data).__name__}")

        labels = data.get("matchLabels")
        match_labels = None
        if labels is not None:
            if not isinstance(labels, Mapping):
                raise SelectorError("`matchLabels` must be a mapping")
            match_labels = {str(k): str(v) for k, v in labels.items()}

        expressions = data.get("matchExpressions")
        match_expressions = None
        if expressions is not None:
            if not isinstance(expressions, list):
                raise SelectorError("`matchExpressions` must be a list")
            match_expressions = []
            for item in expressions:
                if not isinstance(item, Mapping):
                    raise SelectorError("selector requirement must be a mapping")
                values = item.get("values") or []
                if not isinstance(values, list):
                    raise SelectorError("requirement `values` must be a list")
                match_expressions.append(
                    LabelSelectorRequirement(
                        key=str(item.get("key") or ""),
                        operator=str(item.get("operator") or ""),
                        values=[str(v) for v in values],
                    )
                )
        return cls(match_labels=match_labels, match_expressions=match_expressions)