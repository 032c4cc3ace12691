from __future__ import annotations

import random
import string
from collections.abc import Sequence

from pyDOE3 import fracfact, fullfact, pbdesign

from econ_doe_tutorial.models import DesignTable


class DesignError(ValueError):
    """Raised when no design exists (or is known) for the requested parameters."""


def default_factor_names(n_factors: int) -> tuple[str, ...]:
    letters = string.ascii_uppercase
    return tuple(letters[i] if i < len(letters) else f"F{i + 1}" for i in range(n_factors))


def _resolve_names(
    n_factors: int,
    n_levels: int,
    factor_names: Sequence[str] | None,
    level_labels: Sequence[str] | None,
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    if n_factors < 1:
        raise DesignError(f"Need at least one factor, got n_factors={n_factors}")
    if n_levels < 2:
        raise DesignError(f"Factors need at least two levels, got n_levels={n_levels}")

    names = tuple(factor_names) if factor_names is not None else default_factor_names(n_factors)
    if len(names) != n_factors:
        raise DesignError(f"Got {len(names)} factor names for {n_factors} factors")
    if len(set(names)) != len(names):
        raise DesignError(f"Factor names must be unique: {list(names)}")

    labels = (
        tuple(str(x) for x in level_labels)
        if level_labels is not None
        else tuple(str(k + 1) for k in range(n_levels))
    )
    if len(labels) != n_levels:
        raise DesignError(f"Got {len(labels)} level labels for {n_levels} levels")
    if len(set(labels)) != len(labels):
        raise DesignError(f"Level labels must be unique: {list(labels)}")
    return names, labels


def _run_order(
    n_runs: int, *, replications: int, repeat_only: bool, randomize: bool, rng: random.Random | None
) -> list[int]:
    if replications < 1:
        raise DesignError(f"replications must be >= 1, got {replications}")
    if randomize and rng is None:
        raise DesignError("randomize=True needs an explicit rng")

    def block() -> list[int]:
        order = list(range(n_runs))
        if randomize and rng is not None:
            rng.shuffle(order)
        return order

    if repeat_only:
        return [i for i in block() for _ in range(replications)]
    return [i for _ in range(replications) for i in block()]


def _to_table(
    level_index: list[list[int]],
    *,
    names: tuple[str, ...],
    labels: tuple[str, ...],
    order: list[int],
) -> DesignTable:
    data = {
        name: [labels[level_index[row][j]] for row in order] for j, name in enumerate(names)
    }
    return DesignTable.from_columns(data, levels={name: labels for name in names})


def full_factorial(
    *,
    n_factors: int,
    n_levels: int = 2,
    factor_names: Sequence[str] | None = None,
    level_labels: Sequence[str] | None = None,
    replications: int = 1,
    repeat_only: bool = False,
    randomize: bool = False,
    rng: random.Random | None = None,
) -> DesignTable:
    """
    Every combination of ``n_levels`` levels for ``n_factors`` factors.

    Runs are in standard order (first factor varies fastest). Cells hold the raw
    level labels ("1", "2", ... unless ``level_labels`` is given).
    """
    names, labels = _resolve_names(n_factors, n_levels, factor_names, level_labels)
    base = fullfact([n_levels] * n_factors)
    level_index = [[int(v) for v in row] for row in base.tolist()]
    order = _run_order(
        len(level_index),
        replications=replications,
        repeat_only=repeat_only,
        randomize=randomize,
        rng=rng,
    )
    return _to_table(level_index, names=names, labels=labels, order=order)


def _is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


def _plackett_burman_size(n: int) -> bool:
    for base in (12, 20):
        if n % base == 0 and _is_power_of_two(n // base):
            return True
    return False


def supported_run_size(n_runs: int) -> bool:
    return n_runs >= 4 and (_is_power_of_two(n_runs) or _plackett_burman_size(n_runs))


def default_run_size(n_factors: int) -> int:
    n_runs = 4
    while n_runs <= n_factors or not supported_run_size(n_runs):
        n_runs += 4
    return n_runs


def yates_generator(n_factors: int, n_runs: int) -> str:
    """
    Generator string for ``pyDOE3.fracfact``: the first ``n_factors`` columns of
    the saturated two-level array with ``n_runs`` runs, in Yates order
    (a, b, ab, c, ac, bc, abc, d, ...).
    """
    k = n_runs.bit_length() - 1
    if k > len(string.ascii_lowercase):
        raise DesignError(f"Run size {n_runs} is too large for a regular fraction")
    words: list[str] = []
    for column in range(1, n_factors + 1):
        words.append("".join(string.ascii_lowercase[b] for b in range(k) if column >> b & 1))
    return " ".join(words)


def _coded_array(n_factors: int, n_runs: int) -> list[list[float]]:
    if _is_power_of_two(n_runs):
        # saturated fraction spans every base letter, so it always has n_runs rows
        full = fracfact(yates_generator(n_runs - 1, n_runs)).tolist()
    else:
        full = pbdesign(n_runs - 1).tolist()
    if len(full) != n_runs:
        raise DesignError(f"Expected {n_runs} runs, the array has {len(full)}")
    return [row[:n_factors] for row in full]


def orthogonal_array(
    *,
    n_factors: int,
    n_levels: int = 2,
    n_runs: int | None = None,
    factor_names: Sequence[str] | None = None,
    level_labels: Sequence[str] | None = None,
    replications: int = 1,
    repeat_only: bool = False,
    randomize: bool = False,
    rng: random.Random | None = None,
) -> DesignTable:
    """
    Two-level orthogonal array: every pair of factor columns is balanced.

    Power-of-two run sizes are regular fractions (factor k gets Yates column k,
    so with 4 factors in 8 runs C is the A x B column); 12*2^m and 20*2^m runs
    use Plackett-Burman arrays.
    """
    names, labels = _resolve_names(n_factors, n_levels, factor_names, level_labels)
    if n_levels != 2:
        raise DesignError(
            f"Orthogonal arrays are only available for 2-level factors, got {n_levels}"
        )

    runs = default_run_size(n_factors) if n_runs is None else n_runs
    if runs <= n_factors:
        raise DesignError(
            f"{runs} runs cannot hold {n_factors} two-level factors (need > {n_factors})"
        )
    if runs % 4 != 0 or not supported_run_size(runs):
        raise DesignError(f"No known two-level orthogonal array with {runs} runs")

    coded = _coded_array(n_factors, runs)
    level_index = [[0 if v < 0 else 1 for v in row] for row in coded]
    order = _run_order(
        len(level_index),
        replications=replications,
        repeat_only=repeat_only,
        randomize=randomize,
        rng=rng,
    )
    return _to_table(level_index, names=names, labels=labels, order=order)
