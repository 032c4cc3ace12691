from __future__ import annotations

import math
from dataclasses import dataclass

from econ_doe_tutorial.simulation import MonteCarloResult

Z_95 = 1.959963984540054


@dataclass(frozen=True)
class EstimateSummary:
    term: str
    true_value: float
    mean_estimate: float
    bias: float
    sd_estimate: float
    mean_std_error: float
    coverage_95: float


def _mean(xs: list[float]) -> float:
    return sum(xs) / len(xs) if xs else 0.0


def _sd(xs: list[float]) -> float:
    n = len(xs)
    if n < 2:
        return 0.0
    m = _mean(xs)
    return math.sqrt(sum((x - m) ** 2 for x in xs) / (n - 1))


def summarize_estimates(result: MonteCarloResult) -> list[EstimateSummary]:
    out: list[EstimateSummary] = []
    for term in result.terms:
        est = result.estimates[term]
        ses = result.std_errors[term]
        truth = result.truth[term]
        covered = [
            1.0 if abs(b - truth) <= Z_95 * s else 0.0
            for b, s in zip(est, ses, strict=True)
            if not math.isnan(s)
        ]
        mean_est = _mean(est)
        out.append(
            EstimateSummary(
                term=term,
                true_value=truth,
                mean_estimate=mean_est,
                bias=mean_est - truth,
                sd_estimate=_sd(est),
                mean_std_error=_mean([s for s in ses if not math.isnan(s)]),
                coverage_95=_mean(covered),
            )
        )
    return out


def summary_rows(summaries: list[EstimateSummary], *, digits: int = 3) -> list[dict[str, object]]:
    return [
        {
            "term": s.term,
            "true_value": round(s.true_value, digits),
            "mean_estimate": round(s.mean_estimate, digits),
            "bias": round(s.bias, digits),
            "sd_estimate": round(s.sd_estimate, digits),
            "mean_std_error": round(s.mean_std_error, digits),
            "coverage_95": round(s.coverage_95, digits),
        }
        for s in summaries
    ]
