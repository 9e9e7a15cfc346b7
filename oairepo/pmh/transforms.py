from __future__ import annotations

import dataclasses
from typing import Callable, Dict, Iterable, List, Sequence

from oairepo.pmh.errors import ConfigError
from oairepo.store.records import Record, Value

# (term, values) -> values, applied to every term of a record before rendering.
ValueTransform = Callable[[str, List[Value]], List[Value]]


def strip(term: str, values: List[Value]) -> List[Value]:
    out = []
    for value in values:
        text = value.text.strip()
        if text:
            out.append(dataclasses.replace(value, text=text))
    return out


def dedupe(term: str, values: List[Value]) -> List[Value]:
    seen = set()
    out = []
    for value in values:
        if value.text in seen:
            continue
        seen.add(value.text)
        out.append(value)
    return out


def hide_terms(terms: Iterable[str]) -> ValueTransform:
    hidden = frozenset(terms)

    def transform(term: str, values: List[Value]) -> List[Value]:
        return [] if term in hidden else values

    return transform


BUILTIN_TRANSFORMS: Dict[str, ValueTransform] = {
    "strip": strip,
    "dedupe": dedupe,
}


def build_transforms(names: Sequence[str], hidden_terms: Sequence[str] = ()) -> List[ValueTransform]:
    transforms: List[ValueTransform] = []
    if hidden_terms:
        transforms.append(hide_terms(hidden_terms))
    for name in names:
        try:
            transforms.append(BUILTIN_TRANSFORMS[name])
        except KeyError:
            raise ConfigError(
                f"Unknown value transform '{name}'. Available: {', '.join(sorted(BUILTIN_TRANSFORMS))}"
            ) from None
    return transforms


def apply_transforms(record: Record, transforms: Sequence[ValueTransform]) -> Record:
    """Return a copy of `record` whose values went through `transforms` in order."""
    if not transforms:
        return record
    values: Dict[str, List[Value]] = {}
    for term, term_values in record.values.items():
        current = list(term_values)
        for transform in transforms:
            current = transform(term, current)
        if current:
            values[term] = current
    return dataclasses.replace(record, values=values)
