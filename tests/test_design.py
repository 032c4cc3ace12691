from __future__ import annotations

import random
from collections import Counter
from itertools import combinations

import pytest

from econ_doe_tutorial.design import (
    DesignError,
    default_run_size,
    full_factorial,
    orthogonal_array,
    yates_generator,
)
from econ_doe_tutorial.models import DesignTable


def _pairs_balanced(table: DesignTable) -> bool:
    for a, b in combinations(table.names, 2):
        counts = Counter(zip(table.column(a), table.column(b), strict=True))
        if len(counts) != 4 or len(set(counts.values())) != 1:
            return False
    return True


def test_full_factorial_two_levels_shape_and_balance() -> None:
    t = full_factorial(n_factors=4)
    assert t.n_rows == 16
    assert t.names == ("A", "B", "C", "D")
    for name in t.names:
        assert Counter(t.column(name)) == {"1": 8, "2": 8}
        assert t.levels_of(name) == ("1", "2")


def test_full_factorial_enumerates_every_combination() -> None:
    t = full_factorial(n_factors=3)
    combos = {tuple(row.values()) for row in t.rows()}
    assert len(combos) == 8


def test_full_factorial_multilevel_and_labels() -> None:
    t = full_factorial(
        n_factors=2, n_levels=3, factor_names=["price", "ad"], level_labels=["lo", "mid", "hi"]
    )
    assert t.n_rows == 9
    assert t.names == ("price", "ad")
    assert Counter(t.column("price")) == {"lo": 3, "mid": 3, "hi": 3}


def test_replication_stacks_or_repeats() -> None:
    stacked = full_factorial(n_factors=2, replications=3)
    assert stacked.n_rows == 12
    assert stacked.rows()[:4] == stacked.rows()[4:8]

    repeated = full_factorial(n_factors=2, replications=3, repeat_only=True)
    assert repeated.n_rows == 12
    assert repeated.rows()[0] == repeated.rows()[1] == repeated.rows()[2]
    assert Counter(map(lambda r: tuple(r.values()), repeated.rows())) == Counter(
        map(lambda r: tuple(r.values()), stacked.rows())
    )


def test_randomize_needs_rng_and_is_reproducible() -> None:
    with pytest.raises(DesignError):
        full_factorial(n_factors=3, randomize=True)
    a = full_factorial(n_factors=3, randomize=True, rng=random.Random(5))
    b = full_factorial(n_factors=3, randomize=True, rng=random.Random(5))
    base = full_factorial(n_factors=3)
    assert a.rows() == b.rows()
    assert sorted(map(lambda r: tuple(r.values()), a.rows())) == sorted(
        map(lambda r: tuple(r.values()), base.rows())
    )


def test_invalid_parameters_raise_design_error() -> None:
    with pytest.raises(DesignError):
        full_factorial(n_factors=0)
    with pytest.raises(DesignError):
        full_factorial(n_factors=2, n_levels=1)
    with pytest.raises(DesignError):
        full_factorial(n_factors=2, factor_names=["A"])
    with pytest.raises(DesignError):
        full_factorial(n_factors=2, factor_names=["A", "A"])
    with pytest.raises(DesignError):
        full_factorial(n_factors=2, replications=0)


def test_yates_generator_and_run_sizes() -> None:
    assert yates_generator(4, 8) == "a b ab c"
    assert yates_generator(7, 8) == "a b ab c ac bc abc"
    assert default_run_size(3) == 4
    assert default_run_size(4) == 8
    assert default_run_size(8) == 12
    assert default_run_size(24) == 32


def test_orthogonal_array_four_factors_is_eight_runs_and_balanced() -> None:
    t = orthogonal_array(n_factors=4)
    assert t.n_rows == 8
    assert t.names == ("A", "B", "C", "D")
    for name in t.names:
        assert Counter(t.column(name)) == {"1": 4, "2": 4}
    assert _pairs_balanced(t)


def test_orthogonal_array_places_c_on_the_ab_column() -> None:
    t = orthogonal_array(n_factors=4)
    for row in t.rows():
        same = row["A"] == row["B"]
        assert (row["C"] == "2") == same


def test_plackett_burman_array_is_pairwise_balanced() -> None:
    t = orthogonal_array(n_factors=8)
    assert t.n_rows == 12
    assert _pairs_balanced(t)


def test_orthogonal_array_replications() -> None:
    t = orthogonal_array(n_factors=4, replications=4)
    assert t.n_rows == 32


def test_orthogonal_array_failures() -> None:
    with pytest.raises(DesignError, match="2-level"):
        orthogonal_array(n_factors=3, n_levels=3)
    with pytest.raises(DesignError):
        orthogonal_array(n_factors=4, n_runs=4)
    with pytest.raises(DesignError):
        orthogonal_array(n_factors=4, n_runs=6)
    with pytest.raises(DesignError, match="No known"):
        orthogonal_array(n_factors=4, n_runs=28)


@pytest.mark.parametrize(
    ("n_factors", "n_runs"),
    [(1, None), (3, None), (2, 8), (4, 16), (5, 16), (7, 8), (8, 12), (2, 24), (3, 32)],
)
def test_orthogonal_array_has_the_requested_run_count(n_factors: int, n_runs: int | None) -> None:
    t = orthogonal_array(n_factors=n_factors, n_runs=n_runs)
    expected = default_run_size(n_factors) if n_runs is None else n_runs
    assert t.n_rows == expected
    assert len(t.names) == n_factors
    for name in t.names:
        assert Counter(t.column(name)) == {"1": expected // 2, "2": expected // 2}
    if n_factors > 1:
        assert _pairs_balanced(t)


def test_single_factor_orthogonal_array_uses_four_runs() -> None:
    t = orthogonal_array(n_factors=1, replications=2)
    assert t.n_rows == 8
