from __future__ import annotations

import random

import pytest

from econ_doe_tutorial.coding import add_interactions, recode_levels
from econ_doe_tutorial.design import full_factorial, orthogonal_array
from econ_doe_tutorial.models import INTERCEPT, DesignTable, OutcomeModel
from econ_doe_tutorial.simulation import (
    hide_truth,
    linear_predictor,
    run_monte_carlo,
    simulate_observed,
    simulate_outcome,
)


def _design(replications: int = 1) -> DesignTable:
    design = full_factorial(n_factors=3, replications=replications)
    return add_interactions(recode_levels(design), [("A", "B")])


MODEL = OutcomeModel(intercept=5.0, coefficients={"A": 1.0, "B": -2.0, "AxB": 0.5}, noise_sd=1.0)


def test_simulate_outcome_adds_truth_and_outcome() -> None:
    table = _design()
    out = simulate_outcome(table, model=MODEL, rng=random.Random(0))
    assert out.names[-3:] == ("Y_hat", "epsilon", "Y")
    assert table.names == ("A", "B", "C", "AxB")
    for row in out.rows():
        expected = 5.0 + row["A"] - 2.0 * row["B"] + 0.5 * row["AxB"]
        assert abs(row["Y_hat"] - expected) < 1e-12
        assert abs(row["Y"] - (row["Y_hat"] + row["epsilon"])) < 1e-12


def test_noise_is_reproducible_with_explicit_seed() -> None:
    table = _design()
    a = simulate_outcome(table, model=MODEL, rng=random.Random(42))
    b = simulate_outcome(table, model=MODEL, rng=random.Random(42))
    c = simulate_outcome(table, model=MODEL, rng=random.Random(43))
    assert a.column("epsilon") == b.column("epsilon")
    assert a.column("epsilon") != c.column("epsilon")
    assert len(set(a.column("epsilon"))) == table.n_rows


def test_hide_truth_keeps_design_and_outcome() -> None:
    observed = simulate_observed(_design(), model=MODEL, rng=random.Random(1))
    assert observed.names == ("A", "B", "C", "AxB", "Y")
    assert hide_truth(observed) == observed


def test_zero_noise_outcome_is_the_linear_predictor() -> None:
    model = OutcomeModel(intercept=1.0, coefficients={"A": 2.0}, noise_sd=0.0)
    out = simulate_outcome(_design(), model=model, rng=random.Random(0))
    assert out.column("Y") == tuple(linear_predictor(_design(), model))
    assert all(e == 0.0 for e in out.column("epsilon"))


def test_simulate_rejects_unknown_or_raw_regressors() -> None:
    with pytest.raises(ValueError, match="not a column"):
        simulate_outcome(
            _design(),
            model=OutcomeModel(intercept=0.0, coefficients={"Z": 1.0}),
            rng=random.Random(0),
        )
    with pytest.raises(ValueError, match="recode"):
        simulate_outcome(
            full_factorial(n_factors=2),
            model=OutcomeModel(intercept=0.0, coefficients={"A": 1.0}),
            rng=random.Random(0),
        )


def test_monte_carlo_zero_noise_recovers_truth_every_draw() -> None:
    model = OutcomeModel(intercept=5.0, coefficients=dict(MODEL.coefficients), noise_sd=0.0)
    res = run_monte_carlo(
        table=_design(replications=2),
        model=model,
        formula="Y ~ A + B + AxB",
        replications=3,
        seed=0,
    )
    assert res.terms == (INTERCEPT, "A", "B", "AxB")
    assert res.truth == {INTERCEPT: 5.0, "A": 1.0, "B": -2.0, "AxB": 0.5}
    for term in res.terms:
        assert len(res.estimates[term]) == 3
        assert all(abs(b - res.truth[term]) < 1e-9 for b in res.estimates[term])


def test_monte_carlo_is_reproducible() -> None:
    kwargs = dict(table=_design(replications=2), model=MODEL, formula="Y ~ A + B", replications=4)
    a = run_monte_carlo(seed=9, **kwargs)
    b = run_monte_carlo(seed=9, **kwargs)
    assert a.estimates == b.estimates
    assert a.truth["B"] == -2.0


def test_monte_carlo_shows_omitted_variable_bias_in_orthogonal_array() -> None:
    design = orthogonal_array(n_factors=4, replications=4)
    table = add_interactions(recode_levels(design), [("A", "B")])
    model = OutcomeModel(
        intercept=10.0,
        coefficients={"A": 2.0, "B": -1.5, "C": 1.0, "AxB": 0.5},
        noise_sd=1.0,
    )
    res = run_monte_carlo(
        table=table, model=model, formula="Y ~ A + B + AxB", replications=200, seed=3
    )
    mean_ab = sum(res.estimates["AxB"]) / len(res.estimates["AxB"])
    assert abs(mean_ab - 1.5) < 0.05
    mean_a = sum(res.estimates["A"]) / len(res.estimates["A"])
    assert abs(mean_a - 2.0) < 0.05


def test_monte_carlo_needs_positive_replications() -> None:
    with pytest.raises(ValueError):
        run_monte_carlo(table=_design(), model=MODEL, formula="Y ~ A", replications=0, seed=0)
