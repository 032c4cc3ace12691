from __future__ import annotations

import random
from dataclasses import dataclass

from econ_doe_tutorial.coding import drop_columns
from econ_doe_tutorial.econometrics import Formula, fit, parse_formula
from econ_doe_tutorial.models import DesignTable, OutcomeModel

TRUTH_COLUMNS: tuple[str, ...] = ("Y_hat", "epsilon")


def linear_predictor(table: DesignTable, model: OutcomeModel) -> list[float]:
    y_hat = [float(model.intercept) for _ in range(table.n_rows)]
    for name, coef in model.coefficients:
        if not table.has(name):
            raise ValueError(f"Model regressor {name!r} is not a column of the design")
        if not table.is_numeric(name):
            raise ValueError(f"Model regressor {name!r} is not numeric; recode its levels first")
        for i, v in enumerate(table.numeric_column(name)):
            y_hat[i] += float(coef) * v
    return y_hat


def simulate_outcome(
    table: DesignTable,
    *,
    model: OutcomeModel,
    rng: random.Random,
    outcome: str = "Y",
) -> DesignTable:
    """
    Append ``Y_hat`` (true linear predictor), ``epsilon`` (N(0, sd) noise, one
    independent draw per row) and ``outcome = Y_hat + epsilon``.
    """
    y_hat = linear_predictor(table, model)
    epsilon = [rng.gauss(0.0, model.noise_sd) for _ in y_hat]
    y = [a + e for a, e in zip(y_hat, epsilon, strict=True)]
    return (
        table.with_column(TRUTH_COLUMNS[0], y_hat)
        .with_column(TRUTH_COLUMNS[1], epsilon)
        .with_column(outcome, y)
    )


def hide_truth(table: DesignTable) -> DesignTable:
    """Drop the unobservable columns, keeping the design and the outcome."""
    return drop_columns(table, [name for name in TRUTH_COLUMNS if table.has(name)])


def simulate_observed(
    table: DesignTable,
    *,
    model: OutcomeModel,
    rng: random.Random,
    outcome: str = "Y",
) -> DesignTable:
    return hide_truth(simulate_outcome(table, model=model, rng=rng, outcome=outcome))


@dataclass(frozen=True)
class MonteCarloResult:
    formula: str
    terms: tuple[str, ...]
    truth: dict[str, float]
    estimates: dict[str, list[float]]
    std_errors: dict[str, list[float]]
    replications: int
    seed: int


def run_monte_carlo(
    *,
    table: DesignTable,
    model: OutcomeModel,
    formula: str | Formula,
    replications: int,
    seed: int,
) -> MonteCarloResult:
    if replications < 1:
        raise ValueError(f"replications must be >= 1, got {replications}")
    parsed = parse_formula(formula) if isinstance(formula, str) else formula
    terms = parsed.regressors
    estimates: dict[str, list[float]] = {t: [] for t in terms}
    std_errors: dict[str, list[float]] = {t: [] for t in terms}

    for r in range(replications):
        rep_rng = random.Random(seed * 10_000 + r)  # nosec B311
        observed = simulate_observed(table, model=model, rng=rep_rng, outcome=parsed.outcome)
        res = fit(parsed, observed)
        for term in terms:
            estimates[term].append(res.coef_of(term))
            std_errors[term].append(res.se_of(term))

    return MonteCarloResult(
        formula=str(parsed),
        terms=terms,
        truth={t: model.true_value(t) for t in terms},
        estimates=estimates,
        std_errors=std_errors,
        replications=replications,
        seed=seed,
    )
