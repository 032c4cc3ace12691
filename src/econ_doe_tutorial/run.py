from __future__ import annotations

import argparse
import random
from dataclasses import asdict, dataclass
from pathlib import Path

from econ_doe_tutorial.analysis import summarize_estimates, summary_rows
from econ_doe_tutorial.coding import add_interactions, interaction_terms, recode_levels
from econ_doe_tutorial.design import full_factorial, orthogonal_array
from econ_doe_tutorial.diagnostics import (
    Confounding,
    confounded_pairs,
    constant_columns,
    correlation_matrix,
    frequency_tables,
    is_balanced,
)
from econ_doe_tutorial.econometrics import (
    OLSResult,
    RankDeficiencyError,
    fit,
    omitted_variable_bias,
)
from econ_doe_tutorial.env import get_tutorial_env
from econ_doe_tutorial.logging_utils import get_logger, log, set_level
from econ_doe_tutorial.models import DesignTable, OutcomeModel
from econ_doe_tutorial.plotting import BarGroup, grouped_bar_chart_svg, heatmap_svg
from econ_doe_tutorial.report import (
    Block,
    Chapter,
    FigureBlock,
    Paragraph,
    RegressionBlock,
    TableBlock,
    table_rows,
    write_report,
)
from econ_doe_tutorial.simulation import hide_truth, run_monte_carlo, simulate_outcome

logger = get_logger(__name__)

FACTORS: tuple[str, ...] = ("A", "B", "C", "D")
TITLE = "Experimental design for economic research: factorial designs and misspecification"


@dataclass(frozen=True)
class TutorialParams:
    seed: int = 7
    replications: int = 500  # Monte Carlo draws per scenario
    design_replications: int = 4
    noise_sd: float = 1.0
    intercept: float = 10.0
    a: float = 2.0
    b: float = -1.5
    c: float = 1.0
    ab: float = 0.5

    def true_model(self) -> OutcomeModel:
        return OutcomeModel(
            intercept=self.intercept,
            coefficients={"A": self.a, "B": self.b, "C": self.c, "AxB": self.ab},
            noise_sd=self.noise_sd,
        )


def _frequency_rows(table: DesignTable) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for column, counts in frequency_tables(table).items():
        for value, count in counts.items():
            rows.append({"column": column, "value": value, "count": count})
    return rows


def _confounding_rows(pairs: list[Confounding]) -> list[dict[str, object]]:
    return [
        {
            "first": p.first,
            "second": p.second,
            "correlation": round(p.correlation, 3),
            "fully_aliased": p.fully_aliased,
        }
        for p in pairs
    ]


def _bias_rows(
    bias: dict[str, float], model: OutcomeModel, result: OLSResult
) -> list[dict[str, object]]:
    return [
        {
            "term": term,
            "true_value": model.true_value(term),
            "expected_bias": round(b, 4),
            "expected_estimate": round(model.true_value(term) + b, 4),
            "estimate": round(result.coef_of(term), 4),
        }
        for term, b in bias.items()
    ]


def _diagnostic_blocks(key: str, label: str, table: DesignTable) -> list[Block]:
    corr = correlation_matrix(table)
    return [
        TableBlock(
            key="frequencies",
            caption=f"{label}: how often each value occurs in each column.",
            rows=_frequency_rows(table),
        ),
        TableBlock(
            key="correlations",
            caption=f"{label}: Pearson correlations between all columns (n/a = constant column).",
            rows=corr.as_rows(),
        ),
        FigureBlock(
            filename=f"fig_{key}_correlations.svg",
            caption=f"{label}: correlation heatmap (blue positive, red negative, grey undefined).",
            svg=heatmap_svg(
                title=f"Correlations: {label}",
                x_labels=list(corr.labels),
                y_labels=list(corr.labels),
                values=[list(row) for row in corr.values],
                max_abs=1.0,
            ),
        ),
    ]


def _alias_text(pairs: list[Confounding]) -> str:
    return "; ".join(f"{p.first} ~ {p.second} (r = {p.correlation:+.2f})" for p in pairs)


def full_factorial_chapter() -> tuple[Chapter, dict[str, object]]:
    design = full_factorial(n_factors=len(FACTORS), factor_names=FACTORS)
    coded = recode_levels(design)
    table = add_interactions(coded, interaction_terms(FACTORS, max_order=3))
    pairs = confounded_pairs(table)
    balanced = all(is_balanced(table, f) for f in FACTORS)
    log(
        logger,
        20,
        "full_factorial_done",
        runs=table.n_rows,
        columns=len(table.names),
        aliases=len(pairs),
    )

    blocks: list[Block] = [
        Paragraph(
            f"A full factorial design runs every combination of factor levels. With "
            f"{len(FACTORS)} factors at 2 levels that is 2^{len(FACTORS)} = {design.n_rows} runs."
        ),
        TableBlock(
            key="design_raw",
            caption="Raw design (levels labelled 1 and 2).",
            rows=table_rows(design),
        ),
        Paragraph(
            "We recode the first level of every factor to -1 and the second to +1, then add "
            "every two- and three-way interaction column as the product of its factors."
        ),
        TableBlock(
            key="design_coded",
            caption="Recoded design with interactions.",
            rows=table_rows(table),
        ),
        *_diagnostic_blocks("full_factorial", "Full factorial", table),
        Paragraph(
            ("Every factor is balanced. " if balanced else "Some factors are unbalanced. ")
            + (
                "No two columns are correlated: main effects and all interactions can be "
                "estimated separately."
                if not pairs
                else f"Correlated columns: {_alias_text(pairs)}."
            )
        ),
    ]
    meta: dict[str, object] = {
        "runs": table.n_rows,
        "balanced": balanced,
        "confounded_pairs": [[p.first, p.second, p.correlation] for p in pairs],
    }
    return Chapter(key="full_factorial", title="Full factorial design", blocks=blocks), meta


def orthogonal_array_chapter() -> tuple[Chapter, dict[str, object]]:
    design = orthogonal_array(n_factors=len(FACTORS), factor_names=FACTORS)
    coded = recode_levels(design)
    table = add_interactions(coded, interaction_terms(FACTORS, max_order=3))
    main_pairs = confounded_pairs(table, list(FACTORS))
    pairs = confounded_pairs(table)
    constants = constant_columns(table)
    log(
        logger,
        20,
        "orthogonal_array_done",
        runs=table.n_rows,
        aliases=len(pairs),
        constant_columns=constants,
    )

    blocks: list[Block] = [
        Paragraph(
            f"An orthogonal array keeps only {design.n_rows} of the "
            f"{2 ** len(FACTORS)} combinations while every pair of factors stays balanced: "
            "each combination of two factor levels appears equally often."
        ),
        TableBlock(key="design_raw", caption="Raw orthogonal array.", rows=table_rows(design)),
        TableBlock(
            key="design_coded",
            caption="Recoded array with interactions.",
            rows=table_rows(table),
        ),
        *_diagnostic_blocks("orthogonal_array", "Orthogonal array", table),
        Paragraph(
            "The main effects are mutually uncorrelated."
            if not main_pairs
            else f"Some main effects are correlated: {_alias_text(main_pairs)}."
        ),
        Paragraph(
            "The price of fewer runs is aliasing: some interactions are indistinguishable from "
            f"main effects or from each other. {_alias_text(pairs)}."
        ),
        TableBlock(
            key="aliases", caption="Correlated column pairs.", rows=_confounding_rows(pairs)
        ),
    ]
    if constants:
        blocks.append(
            Paragraph(
                f"Constant columns ({', '.join(constants)}) are aliased with the intercept; "
                "their correlations are undefined."
            )
        )
    meta: dict[str, object] = {
        "runs": table.n_rows,
        "confounded_pairs": [[p.first, p.second, p.correlation] for p in pairs],
        "constant_columns": constants,
    }
    return Chapter(key="orthogonal_array", title="Orthogonal array", blocks=blocks), meta


def _simulation_design(kind: str, params: TutorialParams) -> DesignTable:
    if kind == "full_factorial":
        design = full_factorial(
            n_factors=len(FACTORS), factor_names=FACTORS, replications=params.design_replications
        )
    elif kind == "orthogonal_array":
        design = orthogonal_array(
            n_factors=len(FACTORS), factor_names=FACTORS, replications=params.design_replications
        )
    else:
        raise ValueError(f"Unknown design kind {kind!r}")
    return add_interactions(recode_levels(design), [("A", "B")])


def full_factorial_simulation_chapter(params: TutorialParams) -> tuple[Chapter, dict[str, object]]:
    model = params.true_model()
    table = _simulation_design("full_factorial", params)
    rng = random.Random(params.seed)  # nosec B311
    simulated = simulate_outcome(table, model=model, rng=rng)
    observed = hide_truth(simulated)

    correct = fit("Y ~ A + B + C + AxB", observed)
    omitted_formula = "Y ~ A + B + C"
    omitted = fit(omitted_formula, observed)
    bias = omitted_variable_bias(observed, model=model, formula=omitted_formula)
    log(
        logger,
        20,
        "full_factorial_simulation_done",
        runs=observed.n_rows,
        ab_hat=correct.coef_of("AxB"),
        r2_correct=correct.r_squared,
        r2_omitted=omitted.r_squared,
    )

    blocks: list[Block] = [
        Paragraph(
            f"We replicate the full factorial {params.design_replications} times "
            f"({observed.n_rows} runs) and simulate an outcome from a known model: "
            f"{model.describe()}."
        ),
        TableBlock(
            key="simulated",
            caption="Simulated data including the unobservable Y_hat and epsilon.",
            rows=table_rows(simulated),
        ),
        Paragraph(
            "A researcher never sees Y_hat or epsilon, so we drop them and estimate from the "
            "factor columns and Y alone."
        ),
        RegressionBlock(caption="Correctly specified model.", summary=correct.summary()),
        RegressionBlock(caption="Model omitting the A x B interaction.", summary=omitted.summary()),
        TableBlock(
            key="omitted_interaction_bias",
            caption="Expected bias from omitting A x B: zero, since AxB is orthogonal to A, B, C.",
            rows=_bias_rows(bias, model, omitted),
        ),
        Paragraph(
            "Because the interaction column is orthogonal to every included regressor, leaving "
            "it out does not bias the main effects; it only moves its variation into the "
            "residual, so the standard errors grow and R-squared falls "
            f"({correct.r_squared:.3f} -> {omitted.r_squared:.3f})."
        ),
    ]
    meta: dict[str, object] = {
        "seed": params.seed,
        "runs": observed.n_rows,
        "correct": dict(zip(correct.names, correct.coef, strict=True)),
        "omitted_interaction": dict(zip(omitted.names, omitted.coef, strict=True)),
    }
    chapter = Chapter(key="ff_simulation", title="Simulation on the full factorial", blocks=blocks)
    return chapter, meta


def orthogonal_array_simulation_chapter(
    params: TutorialParams,
) -> tuple[Chapter, dict[str, object]]:
    model = params.true_model()
    table = _simulation_design("orthogonal_array", params)
    rng = random.Random(params.seed + 1)  # nosec B311
    observed = hide_truth(simulate_outcome(table, model=model, rng=rng))
    r_c_ab = correlation_matrix(table, ["C", "AxB"]).get("C", "AxB")

    formula = "Y ~ A + B + AxB"
    misspecified = fit(formula, observed)
    bias = omitted_variable_bias(observed, model=model, formula=formula)
    log(
        logger,
        20,
        "orthogonal_array_simulation_done",
        runs=observed.n_rows,
        corr_c_axb=r_c_ab,
        ab_hat=misspecified.coef_of("AxB"),
        ab_true=params.ab,
    )

    blocks: list[Block] = [
        Paragraph(
            f"Now the same model is simulated on the replicated orthogonal array "
            f"({observed.n_rows} runs). In this array corr(C, AxB) = {r_c_ab:+.2f}."
        ),
        TableBlock(
            key="observed",
            caption="Observed data (truth removed).",
            rows=table_rows(observed),
        ),
        RegressionBlock(caption=f"Misspecified model: {formula}.", summary=misspecified.summary()),
        TableBlock(
            key="omitted_variable_bias",
            caption="Expected bias from omitting C.",
            rows=_bias_rows(bias, model, misspecified),
        ),
        Paragraph(
            f"The AxB estimate is {misspecified.coef_of('AxB'):.3f}, not the true {params.ab:g}: "
            f"it also picks up the effect of C ({params.c:g}), because C and AxB move together "
            "in this design. This is omitted-variable bias."
        ),
    ]
    full_formula = "Y ~ A + B + C + AxB"
    try:
        fit(full_formula, observed)
    except RankDeficiencyError as exc:
        log(logger, 30, "true_model_not_identified", formula=full_formula, error=str(exc))
        blocks.append(
            Paragraph(
                f"Adding C back does not help: {full_formula} cannot be estimated on this "
                f"design ({exc}). The data alone cannot separate C from AxB."
            )
        )

    meta: dict[str, object] = {
        "seed": params.seed + 1,
        "runs": observed.n_rows,
        "corr_c_axb": r_c_ab,
        "misspecified": dict(zip(misspecified.names, misspecified.coef, strict=True)),
        "expected_bias": bias,
    }
    chapter = Chapter(
        key="oa_simulation", title="Omitted variables in the orthogonal array", blocks=blocks
    )
    return chapter, meta


def monte_carlo_chapter(params: TutorialParams) -> tuple[Chapter, dict[str, object]]:
    model = params.true_model()
    designs = {
        "full_factorial": _simulation_design("full_factorial", params),
        "orthogonal_array": _simulation_design("orthogonal_array", params),
    }
    scenarios = [
        ("ff_true", "Full factorial, true model", "full_factorial", "Y ~ A + B + C + AxB"),
        ("ff_no_interaction", "Full factorial, AxB omitted", "full_factorial", "Y ~ A + B + C"),
        ("oa_no_c", "Orthogonal array, C omitted", "orthogonal_array", "Y ~ A + B + AxB"),
    ]

    blocks: list[Block] = [
        Paragraph(
            f"One simulated sample can mislead, so each scenario is repeated "
            f"{params.replications} times with fresh noise. Bias is the average estimate minus "
            "the true coefficient; coverage is the share of 95% confidence intervals that "
            "contain the truth."
        )
    ]
    meta: dict[str, object] = {}
    for offset, (key, label, kind, formula) in enumerate(scenarios):
        result = run_monte_carlo(
            table=designs[kind],
            model=model,
            formula=formula,
            replications=params.replications,
            seed=params.seed + 100 + offset,
        )
        summaries = summarize_estimates(result)
        log(
            logger,
            20,
            "monte_carlo_done",
            scenario=key,
            replications=result.replications,
            bias={s.term: s.bias for s in summaries},
        )
        blocks.append(
            TableBlock(key=key, caption=f"{label}: {result.formula}", rows=summary_rows(summaries))
        )
        blocks.append(
            FigureBlock(
                filename=f"fig_mc_{key}.svg",
                caption=f"{label}: true vs. mean estimated coefficients.",
                svg=grouped_bar_chart_svg(
                    title=f"{label}: {result.formula}",
                    groups=[
                        BarGroup(label=s.term, values=(s.true_value, s.mean_estimate))
                        for s in summaries
                    ],
                    series_labels=["true", "mean estimate"],
                    y_label="coefficient",
                ),
            )
        )
        meta[key] = {
            "formula": result.formula,
            "seed": result.seed,
            "bias": {s.term: s.bias for s in summaries},
            "coverage_95": {s.term: s.coverage_95 for s in summaries},
        }

    blocks.append(
        Paragraph(
            "With the full factorial both specifications are unbiased. With the orthogonal "
            f"array the AxB coefficient is biased by about {params.c:g} in every draw, and its "
            "confidence intervals almost never cover the truth: more data does not fix a design "
            "that confounds the effects we care about."
        )
    )
    chapter = Chapter(
        key="monte_carlo", title="Monte Carlo: bias across many samples", blocks=blocks
    )
    return chapter, meta


def build_tutorial(params: TutorialParams) -> tuple[list[Chapter], dict[str, object]]:
    chapters: list[Chapter] = []
    meta: dict[str, object] = {"params": asdict(params)}
    for name, build in (
        ("full_factorial", full_factorial_chapter),
        ("orthogonal_array", orthogonal_array_chapter),
        ("ff_simulation", lambda: full_factorial_simulation_chapter(params)),
        ("oa_simulation", lambda: orthogonal_array_simulation_chapter(params)),
        ("monte_carlo", lambda: monte_carlo_chapter(params)),
    ):
        log(logger, 20, "chapter_start", chapter=name)
        chapter, chapter_meta = build()
        chapters.append(chapter)
        meta[name] = chapter_meta
    return chapters, meta


INTRO = [
    "This document shows how the choice of experimental design decides which effects an "
    "experiment can identify.",
    "We generate a full factorial and an orthogonal array, check their balance and "
    "orthogonality, and then simulate outcomes from a known model to see what happens when "
    "the estimated model leaves out a variable that the design confounds with another.",
]


def main(argv: list[str] | None = None) -> None:
    env = get_tutorial_env()
    parser = argparse.ArgumentParser(description="Regenerate the experimental design tutorial.")
    parser.add_argument("--out", default=str(env.out_dir))
    parser.add_argument("--seed", type=int, default=env.seed)
    parser.add_argument("--replications", type=int, default=500)
    parser.add_argument("--design-replications", type=int, default=4)
    parser.add_argument("--noise-sd", type=float, default=1.0)
    parser.add_argument("--log-level", default=env.log_level)
    args = parser.parse_args(argv)
    set_level(logger, args.log_level)

    params = TutorialParams(
        seed=args.seed,
        replications=args.replications,
        design_replications=args.design_replications,
        noise_sd=args.noise_sd,
    )
    chapters, meta = build_tutorial(params)

    out_dir = Path(args.out)
    written = write_report(
        out_dir=out_dir, title=TITLE, intro=INTRO, chapters=chapters, metadata=meta
    )
    log(logger, 20, "report_written", out_dir=str(out_dir), files=len(written))


if __name__ == "__main__":
    main()
