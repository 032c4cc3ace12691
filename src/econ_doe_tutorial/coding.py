from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from itertools import combinations

from econ_doe_tutorial.models import Cell, DesignTable

CODED_LEVELS = (-1, 1)


def _already_coded(values: Sequence[Cell]) -> bool:
    return all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and v in CODED_LEVELS
        for v in values
    )


def recode_levels(table: DesignTable, columns: Sequence[str] | None = None) -> DesignTable:
    """
    Map the first level of each two-level factor to -1 and the second to +1.

    Level order comes from the table's declared levels, otherwise from the
    sorted distinct values. Columns already coded as -1/+1 are left alone, so
    recoding twice is the same as recoding once.
    """
    targets = (
        [name for name, _lv in table.levels] if columns is None else list(columns)
    )
    out = table
    for name in targets:
        values = out.column(name)
        if _already_coded(values):
            continue
        declared = out.levels_of(name)
        key: Callable[[Cell], Cell]
        if declared is not None:
            levels: tuple[Cell, ...] = declared
            key = str
        else:
            levels = _sorted_distinct(values)
            key = _identity
        if len(levels) != 2:
            raise ValueError(
                f"Column {name!r} has {len(levels)} levels {list(levels)}; need exactly 2"
            )
        mapping = {levels[0]: CODED_LEVELS[0], levels[1]: CODED_LEVELS[1]}
        unknown = {key(v) for v in values} - set(mapping)
        if unknown:
            raise ValueError(
                f"Column {name!r} has values {sorted(map(str, unknown))} outside its levels"
            )
        out = out.replace_column(name, [mapping[key(v)] for v in values])
    return out


def _identity(value: Cell) -> Cell:
    return value


def _sorted_distinct(values: Sequence[Cell]) -> tuple[Cell, ...]:
    distinct = set(values)
    try:
        return tuple(sorted(distinct))
    except TypeError:
        # mixed numbers and labels
        return tuple(sorted(distinct, key=str))


def interaction_name(factors: Sequence[str]) -> str:
    return "x".join(factors)


def interaction_terms(factors: Sequence[str], *, max_order: int = 2) -> list[tuple[str, ...]]:
    if max_order < 2:
        return []
    terms: list[tuple[str, ...]] = []
    for order in range(2, min(max_order, len(factors)) + 1):
        terms.extend(combinations(factors, order))
    return terms


def add_interactions(
    table: DesignTable,
    terms: Mapping[str, Sequence[str]] | Sequence[Sequence[str]],
) -> DesignTable:
    """
    Append one column per term holding the elementwise product of its factors.

    ``terms`` is either ``{name: factors}`` or a list of factor tuples, named
    by joining the factors with "x" (``AxB``). Existing columns are never
    overwritten.
    """
    named: list[tuple[str, tuple[str, ...]]]
    if isinstance(terms, Mapping):
        named = [(name, tuple(factors)) for name, factors in terms.items()]
    else:
        named = [(interaction_name(factors), tuple(factors)) for factors in terms]

    out = table
    for name, factors in named:
        if len(factors) < 2:
            raise ValueError(
                f"Interaction {name!r} needs at least two factors, got {list(factors)}"
            )
        if out.has(name):
            raise ValueError(f"Column {name!r} already exists; interactions are never recomputed")
        cols = [out.numeric_column(f) for f in factors]
        products = [math.prod(row) for row in zip(*cols, strict=True)]
        out = out.with_column(name, [int(v) if float(v).is_integer() else v for v in products])
    return out


def drop_columns(table: DesignTable, names: Sequence[str]) -> DesignTable:
    return table.drop(*names)
