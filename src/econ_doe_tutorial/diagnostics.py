from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import combinations

from econ_doe_tutorial.models import Cell, DesignTable


def _mean(xs: list[float]) -> float:
    return sum(xs) / len(xs) if xs else 0.0


def pearson(x: list[float], y: list[float]) -> float:
    """Pearson correlation; nan when either series has zero variance."""
    if len(x) != len(y):
        raise ValueError("Series must have equal length")
    if len(x) < 2:
        return math.nan
    mx, my = _mean(x), _mean(y)
    sxy = sum((a - mx) * (b - my) for a, b in zip(x, y, strict=True))
    sxx = sum((a - mx) ** 2 for a in x)
    syy = sum((b - my) ** 2 for b in y)
    if sxx <= 0.0 or syy <= 0.0:
        return math.nan
    r = sxy / math.sqrt(sxx * syy)
    # rounding can push |r| a hair past 1 for aliased columns
    return max(-1.0, min(1.0, r))


@dataclass(frozen=True)
class CorrelationMatrix:
    labels: tuple[str, ...]
    values: tuple[tuple[float, ...], ...]

    def get(self, a: str, b: str) -> float:
        return self.values[self.labels.index(a)][self.labels.index(b)]

    def as_rows(self, *, digits: int = 3) -> list[dict[str, object]]:
        rows: list[dict[str, object]] = []
        for label, row in zip(self.labels, self.values, strict=True):
            out: dict[str, object] = {"": label}
            for other, v in zip(self.labels, row, strict=True):
                out[other] = "n/a" if math.isnan(v) else round(v, digits)
            rows.append(out)
        return rows


def _numeric_columns(table: DesignTable, columns: Sequence[str] | None) -> list[str]:
    if columns is not None:
        return list(columns)
    return [name for name in table.names if table.is_numeric(name)]


def correlation_matrix(
    table: DesignTable, columns: Sequence[str] | None = None
) -> CorrelationMatrix:
    names = _numeric_columns(table, columns)
    data = {name: table.numeric_column(name) for name in names}
    values = tuple(tuple(pearson(data[a], data[b]) for b in names) for a in names)
    return CorrelationMatrix(labels=tuple(names), values=values)


def frequency_tables(
    table: DesignTable, columns: Sequence[str] | None = None
) -> dict[str, dict[Cell, int]]:
    names = list(columns) if columns is not None else list(table.names)
    out: dict[str, dict[Cell, int]] = {}
    for name in names:
        counts = Counter(table.column(name))
        ordered = sorted(counts, key=lambda v: (str(type(v)), v))
        out[name] = {value: counts[value] for value in ordered}
    return out


def is_balanced(table: DesignTable, column: str) -> bool:
    counts = set(Counter(table.column(column)).values())
    return len(counts) == 1


def constant_columns(table: DesignTable, columns: Sequence[str] | None = None) -> list[str]:
    return [name for name in _numeric_columns(table, columns) if len(set(table.column(name))) < 2]


@dataclass(frozen=True)
class Confounding:
    first: str
    second: str
    correlation: float

    @property
    def fully_aliased(self) -> bool:
        return abs(abs(self.correlation) - 1.0) <= 1e-9


def confounded_pairs(
    table: DesignTable, columns: Sequence[str] | None = None, *, tol: float = 1e-9
) -> list[Confounding]:
    """Pairs of columns whose correlation is not zero, in column order."""
    matrix = correlation_matrix(table, columns)
    out: list[Confounding] = []
    for a, b in combinations(matrix.labels, 2):
        r = matrix.get(a, b)
        if not math.isnan(r) and abs(r) > tol:
            out.append(Confounding(first=a, second=b, correlation=r))
    return out
