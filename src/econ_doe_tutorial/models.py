from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TypeAlias

Cell: TypeAlias = str | int | float

INTERCEPT = "(Intercept)"


def _is_number(value: Cell) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class DesignTable:
    """
    Ordered column-name -> column-values table.

    Every method returns a new table; instances are never mutated.
    """

    columns: tuple[tuple[str, tuple[Cell, ...]], ...]
    levels: tuple[tuple[str, tuple[str, ...]], ...] = field(default=())

    def __post_init__(self) -> None:
        names = [name for name, _values in self.columns]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate column names: {names}")
        lengths = {len(values) for _name, values in self.columns}
        if len(lengths) > 1:
            raise ValueError(f"Columns must have equal length, got lengths {sorted(lengths)}")
        for name, _lv in self.levels:
            if name not in names:
                raise ValueError(f"Levels declared for unknown column {name!r}")

    @classmethod
    def from_columns(
        cls,
        data: Mapping[str, Iterable[Cell]],
        *,
        levels: Mapping[str, Sequence[str]] | None = None,
    ) -> DesignTable:
        return cls(
            columns=tuple((name, tuple(values)) for name, values in data.items()),
            levels=tuple((name, tuple(lv)) for name, lv in (levels or {}).items()),
        )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _values in self.columns)

    @property
    def n_rows(self) -> int:
        return len(self.columns[0][1]) if self.columns else 0

    def has(self, name: str) -> bool:
        return name in self.names

    def column(self, name: str) -> tuple[Cell, ...]:
        for col_name, values in self.columns:
            if col_name == name:
                return values
        raise KeyError(f"Unknown column {name!r}; have {list(self.names)}")

    def numeric_column(self, name: str) -> list[float]:
        values = self.column(name)
        if not all(_is_number(v) for v in values):
            raise TypeError(f"Column {name!r} is not numeric (recode its levels first)")
        return [float(v) for v in values]

    def is_numeric(self, name: str) -> bool:
        return all(_is_number(v) for v in self.column(name))

    def levels_of(self, name: str) -> tuple[str, ...] | None:
        for col_name, lv in self.levels:
            if col_name == name:
                return lv
        return None

    def with_column(
        self, name: str, values: Iterable[Cell], *, levels: Sequence[str] | None = None
    ) -> DesignTable:
        if self.has(name):
            raise ValueError(f"Column {name!r} already exists")
        vals = tuple(values)
        if self.columns and len(vals) != self.n_rows:
            raise ValueError(
                f"Column {name!r} has {len(vals)} values, table has {self.n_rows} rows"
            )
        new_levels = self.levels if levels is None else self.levels + ((name, tuple(levels)),)
        return DesignTable(columns=self.columns + ((name, vals),), levels=new_levels)

    def replace_column(
        self, name: str, values: Iterable[Cell], *, levels: Sequence[str] | None = None
    ) -> DesignTable:
        """Swap a column's values in place of the old ones, keeping column order."""
        vals = tuple(values)
        if len(vals) != self.n_rows:
            raise ValueError(
                f"Column {name!r} has {len(vals)} values, table has {self.n_rows} rows"
            )
        self.column(name)
        columns = tuple((n, vals if n == name else v) for n, v in self.columns)
        kept_levels = tuple((n, lv) for n, lv in self.levels if n != name)
        if levels is not None:
            kept_levels += ((name, tuple(levels)),)
        return DesignTable(columns=columns, levels=kept_levels)

    def drop(self, *names: str) -> DesignTable:
        missing = [n for n in names if not self.has(n)]
        if missing:
            raise KeyError(f"Cannot drop unknown columns {missing}")
        return DesignTable(
            columns=tuple((n, v) for n, v in self.columns if n not in names),
            levels=tuple((n, lv) for n, lv in self.levels if n not in names),
        )

    def select(self, names: Sequence[str]) -> DesignTable:
        return DesignTable(
            columns=tuple((n, self.column(n)) for n in names),
            levels=tuple((n, lv) for n, lv in self.levels if n in names),
        )

    def rows(self) -> list[dict[str, Cell]]:
        return [{name: values[i] for name, values in self.columns} for i in range(self.n_rows)]


@dataclass(frozen=True)
class OutcomeModel:
    intercept: float
    # regressor column -> true coefficient; a mapping is accepted and stored as pairs
    coefficients: tuple[tuple[str, float], ...] | Mapping[str, float]
    noise_sd: float = 1.0

    def __post_init__(self) -> None:
        if self.noise_sd < 0:
            raise ValueError(f"noise_sd must be >= 0, got {self.noise_sd}")
        pairs = (
            self.coefficients.items()
            if isinstance(self.coefficients, Mapping)
            else self.coefficients
        )
        object.__setattr__(
            self, "coefficients", tuple((str(name), float(coef)) for name, coef in pairs)
        )

    @property
    def terms(self) -> tuple[str, ...]:
        return tuple(name for name, _coef in self.coefficients)

    def true_value(self, term: str) -> float:
        if term == INTERCEPT:
            return self.intercept
        for name, coef in self.coefficients:
            if name == term:
                return coef
        return 0.0

    def describe(self) -> str:
        parts = [f"{self.intercept:g}"]
        for name, coef in self.coefficients:
            sign = "-" if coef < 0 else "+"
            parts.append(f"{sign} {abs(coef):g}*{name}")
        return "Y = " + " ".join(parts) + f" + e, e ~ N(0, {self.noise_sd:g}^2)"
