from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Literal

from econ_doe_tutorial.models import INTERCEPT, DesignTable, OutcomeModel

CovType = Literal["nonrobust", "HC1", "cluster"]


class RankDeficiencyError(ValueError):
    """X'X is singular: some regressors are perfectly collinear."""


# ---------------------------------------------------------------------------
# linear algebra on lists


def _transpose(x: list[list[float]]) -> list[list[float]]:
    if not x:
        return []
    n_cols = len(x[0])
    if any(len(row) != n_cols for row in x):
        raise ValueError("Matrix must be rectangular")
    return [[row[j] for row in x] for j in range(n_cols)]


def _matmul(a: list[list[float]], b: list[list[float]]) -> list[list[float]]:
    if not a or not b:
        return []
    k = len(a[0])
    if any(len(row) != k for row in a):
        raise ValueError("Left matrix must be rectangular")
    if any(len(row) != len(b[0]) for row in b):
        raise ValueError("Right matrix must be rectangular")
    if len(b) != k:
        raise ValueError("Inner dimensions mismatch")
    m = len(b[0])
    out = [[0.0 for _ in range(m)] for _ in range(len(a))]
    for i, row in enumerate(a):
        for t in range(k):
            ait = row[t]
            if ait == 0.0:
                continue
            for j in range(m):
                out[i][j] += ait * b[t][j]
    return out


def _matvec(a: list[list[float]], v: list[float]) -> list[float]:
    if not a:
        return []
    if any(len(row) != len(v) for row in a):
        raise ValueError("Dimension mismatch")
    return [sum(row[j] * v[j] for j in range(len(v))) for row in a]


def _outer(u: list[float], v: list[float]) -> list[list[float]]:
    return [[ui * vj for vj in v] for ui in u]


def _invert_square(a: list[list[float]], *, tol: float = 1e-10) -> list[list[float]]:
    n = len(a)
    if n == 0 or any(len(row) != n for row in a):
        raise ValueError("Expected a non-empty square matrix")

    aug = [
        [float(a[i][j]) for j in range(n)] + [1.0 if i == j else 0.0 for j in range(n)]
        for i in range(n)
    ]
    scale = max(abs(a[i][i]) for i in range(n)) or 1.0

    for col in range(n):
        pivot_row = max(range(col, n), key=lambda r: abs(aug[r][col]))
        if abs(aug[pivot_row][col]) < tol * scale:
            raise RankDeficiencyError(f"Matrix is singular (no pivot in column {col})")
        if pivot_row != col:
            aug[col], aug[pivot_row] = aug[pivot_row], aug[col]

        pivot = aug[col][col]
        for j in range(2 * n):
            aug[col][j] /= pivot

        for r in range(n):
            if r == col:
                continue
            factor = aug[r][col]
            if factor == 0.0:
                continue
            for j in range(2 * n):
                aug[r][j] -= factor * aug[col][j]

    return [row[n:] for row in aug]


# ---------------------------------------------------------------------------
# distributions


def _betacf(a: float, b: float, x: float, *, max_iter: int = 500, eps: float = 1e-15) -> float:
    tiny = 1e-300
    qab, qap, qam = a + b, a + 1.0, a - 1.0
    c = 1.0
    d = 1.0 - qab * x / qap
    d = 1.0 / (d if abs(d) > tiny else tiny)
    h = d
    for m in range(1, max_iter + 1):
        m2 = 2 * m
        aa = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + aa * d
        d = 1.0 / (d if abs(d) > tiny else tiny)
        c = 1.0 + aa / c
        c = c if abs(c) > tiny else tiny
        h *= d * c
        aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + aa * d
        d = 1.0 / (d if abs(d) > tiny else tiny)
        c = 1.0 + aa / c
        c = c if abs(c) > tiny else tiny
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < eps:
            break
    return h


def _regularized_beta(a: float, b: float, x: float) -> float:
    if x <= 0.0:
        return 0.0
    if x >= 1.0:
        return 1.0
    log_front = (
        math.lgamma(a + b) - math.lgamma(a) - math.lgamma(b) + a * math.log(x) + b * math.log1p(-x)
    )
    front = math.exp(log_front)
    if x < (a + 1.0) / (a + b + 2.0):
        return front * _betacf(a, b, x) / a
    return 1.0 - front * _betacf(b, a, 1.0 - x) / b


def student_t_pvalue(t: float, df: float) -> float:
    """Two-sided p-value of a t statistic with ``df`` degrees of freedom."""
    if math.isnan(t) or df <= 0:
        return math.nan
    if math.isinf(t):
        return 0.0
    return _regularized_beta(df / 2.0, 0.5, df / (df + t * t))


def f_pvalue(f: float, df_num: float, df_den: float) -> float:
    if math.isnan(f) or df_num <= 0 or df_den <= 0:
        return math.nan
    if math.isinf(f):
        return 0.0
    if f <= 0.0:
        return 1.0
    return _regularized_beta(df_den / 2.0, df_num / 2.0, df_den / (df_den + df_num * f))


# ---------------------------------------------------------------------------
# formulas


@dataclass(frozen=True)
class Formula:
    outcome: str
    terms: tuple[str, ...]
    intercept: bool = True

    @property
    def regressors(self) -> tuple[str, ...]:
        return ((INTERCEPT,) if self.intercept else ()) + self.terms

    def __str__(self) -> str:
        rhs = " + ".join(self.terms)
        if self.intercept:
            return f"{self.outcome} ~ {rhs or '1'}"
        return f"{self.outcome} ~ {rhs} - 1" if rhs else f"{self.outcome} ~ 0"


_TOKEN = re.compile(r"[+-]?[^+-]+")


def parse_formula(text: str) -> Formula:
    """
    Parse ``"Y ~ A + B + AxB"``.

    ``- 1`` (or a ``0`` term) drops the intercept, ``A:B`` multiplies columns
    on the fly. Only the intercept can be removed with ``-``.
    """
    if text.count("~") != 1:
        raise ValueError(f"Formula needs exactly one '~': {text!r}")
    lhs, rhs = text.split("~")
    outcome = lhs.strip()
    if not outcome or re.search(r"\s|[+:-]", outcome):
        raise ValueError(f"Formula needs a single outcome column: {text!r}")

    compact = re.sub(r"\s+", "", rhs)
    tokens = _TOKEN.findall(compact)
    if not compact or "".join(tokens) != compact:
        raise ValueError(f"Malformed right-hand side in formula {text!r}")

    intercept = True
    terms: list[str] = []
    for token in tokens:
        negative = token.startswith("-")
        name = token.lstrip("+-")
        if name in ("0", "1"):
            intercept = (name == "1") != negative
            continue
        if negative:
            raise ValueError(f"Only the intercept can be removed, got '-{name}' in {text!r}")
        if any(not part for part in name.split(":")):
            raise ValueError(f"Malformed product term {name!r} in {text!r}")
        if name not in terms:
            terms.append(name)
    return Formula(outcome=outcome, terms=tuple(terms), intercept=intercept)


def _term_values(table: DesignTable, term: str) -> list[float]:
    cols = [table.numeric_column(part) for part in term.split(":")]
    return [math.prod(row) for row in zip(*cols, strict=True)]


def design_matrix(table: DesignTable, formula: Formula) -> list[list[float]]:
    cols = [_term_values(table, term) for term in formula.terms]
    lead = [1.0] if formula.intercept else []
    return [lead + [c[i] for c in cols] for i in range(table.n_rows)]


# ---------------------------------------------------------------------------
# estimation


def _stars(p: float) -> str:
    if math.isnan(p):
        return ""
    if p < 0.001:
        return "***"
    if p < 0.01:
        return "**"
    if p < 0.05:
        return "*"
    if p < 0.1:
        return "."
    return ""


def _fmt(x: float, spec: str = ".4f") -> str:
    return "NaN" if math.isnan(x) else format(x, spec)


def _fmt_p(p: float) -> str:
    if math.isnan(p):
        return "NaN"
    return "<0.001" if p < 0.001 else f"{p:.4f}"


@dataclass(frozen=True)
class OLSResult:
    names: tuple[str, ...]
    coef: list[float]
    se: list[float]
    t: list[float]
    p: list[float]
    n_obs: int
    n_params: int
    df_resid: int
    n_clusters: int
    r_squared: float
    adj_r_squared: float
    sigma: float
    f_stat: float
    f_pvalue: float
    cov_type: str = "nonrobust"
    formula: str = ""

    def _index(self, term: str) -> int:
        try:
            return self.names.index(term)
        except ValueError:
            raise KeyError(f"Term {term!r} not in model {list(self.names)}") from None

    def coef_of(self, term: str) -> float:
        return self.coef[self._index(term)]

    def se_of(self, term: str) -> float:
        return self.se[self._index(term)]

    def p_of(self, term: str) -> float:
        return self.p[self._index(term)]

    def conf_int(self, term: str, *, z: float = 1.959963984540054) -> tuple[float, float]:
        b, s = self.coef_of(term), self.se_of(term)
        return b - z * s, b + z * s

    def as_rows(self, *, digits: int = 4) -> list[dict[str, object]]:
        def r(x: float) -> object:
            return "NaN" if math.isnan(x) else round(x, digits)

        return [
            {
                "term": name,
                "estimate": r(b),
                "std_error": r(s),
                "t_value": r(tv),
                "p_value": r(pv),
                "signif": _stars(pv),
            }
            for name, b, s, tv, pv in zip(
                self.names, self.coef, self.se, self.t, self.p, strict=True
            )
        ]

    def summary(self) -> str:
        width = max([len(n) for n in self.names] + [11])
        stat = "t value"
        lines = [
            f"OLS: {self.formula}" if self.formula else "OLS",
            f"n = {self.n_obs}, covariance: {self.cov_type}",
            "",
            f"{'':<{width}}  {'Estimate':>10}  {'Std. Error':>10}  {stat:>8}  {'Pr(>|t|)':>8}",
        ]
        for name, b, s, tv, pv in zip(self.names, self.coef, self.se, self.t, self.p, strict=True):
            lines.append(
                f"{name:<{width}}  {_fmt(b):>10}  {_fmt(s):>10}  {_fmt(tv, '.3f'):>8}  "
                f"{_fmt_p(pv):>8} {_stars(pv)}".rstrip()
            )
        lines.extend(
            [
                "---",
                "Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1",
                "",
                f"Residual standard error: {_fmt(self.sigma)} "
                f"on {self.df_resid} degrees of freedom",
                f"Multiple R-squared: {_fmt(self.r_squared)},  "
                f"Adjusted R-squared: {_fmt(self.adj_r_squared)}",
            ]
        )
        if not math.isnan(self.f_stat):
            df_num = self.n_params - (1 if INTERCEPT in self.names else 0)
            lines.append(
                f"F-statistic: {_fmt(self.f_stat, '.3f')} on {df_num} and {self.df_resid} DF,  "
                f"p-value: {_fmt_p(self.f_pvalue)}"
            )
        if self.n_clusters:
            lines.append(f"Clusters: {self.n_clusters}")
        return "\n".join(lines)


def _nan_list(p: int) -> list[float]:
    return [math.nan for _ in range(p)]


def ols(
    *,
    y: list[float],
    x: list[list[float]],
    names: list[str] | tuple[str, ...],
    cov_type: CovType = "nonrobust",
    clusters: list[str] | None = None,
    df_correction: bool = True,
    formula: str = "",
) -> OLSResult:
    n = len(y)
    if n == 0:
        raise ValueError("Need at least one observation")
    if len(x) != n:
        raise ValueError("Length mismatch: y, x")
    p = len(x[0]) if x else 0
    if p == 0:
        raise ValueError("Need at least one regressor column")
    if any(len(row) != p for row in x):
        raise ValueError("Design matrix must be rectangular")
    if len(names) != p:
        raise ValueError(f"Got {len(names)} names for {p} regressor columns")
    if cov_type == "cluster" and (clusters is None or len(clusters) != n):
        raise ValueError("cov_type='cluster' needs one cluster label per observation")
    if n < p:
        raise RankDeficiencyError(f"{p} regressors but only {n} observations")

    # beta = (X'X)^{-1} X'y
    xt = _transpose(x)
    xtx = _matmul(xt, x)
    xty = _matvec(xt, y)
    try:
        xtx_inv = _invert_square(xtx)
    except RankDeficiencyError as exc:
        raise RankDeficiencyError(
            f"Regressors {list(names)} are perfectly collinear in this design"
        ) from exc
    beta = _matvec(xtx_inv, xty)

    residuals = [y[i] - sum(x[i][j] * beta[j] for j in range(p)) for i in range(n)]
    rss = sum(u * u for u in residuals)
    df_resid = n - p

    has_intercept = INTERCEPT in names
    y_mean = sum(y) / n
    tss = sum((v - y_mean) ** 2 for v in y) if has_intercept else sum(v * v for v in y)

    n_clusters = 0
    if cov_type == "nonrobust":
        if df_resid > 0:
            s2 = rss / df_resid
            v = [[s2 * xtx_inv[r][c] for c in range(p)] for r in range(p)]
        else:
            v = [_nan_list(p) for _ in range(p)]
        df_t = float(df_resid)
    elif cov_type == "HC1":
        meat = [[0.0 for _ in range(p)] for _ in range(p)]
        for i in range(n):
            u2 = residuals[i] ** 2
            for r in range(p):
                for c in range(p):
                    meat[r][c] += u2 * x[i][r] * x[i][c]
        v = _matmul(_matmul(xtx_inv, meat), xtx_inv)
        if df_resid > 0:
            scale = n / float(df_resid)
            v = [[scale * val for val in row] for row in v]
        else:
            v = [_nan_list(p) for _ in range(p)]
        df_t = float(df_resid)
    elif cov_type == "cluster":
        groups: dict[str, list[int]] = {}
        for idx, g in enumerate(clusters or ()):
            groups.setdefault(g, []).append(idx)
        n_clusters = len(groups)

        meat = [[0.0 for _ in range(p)] for _ in range(p)]
        for g_idx in groups.values():
            s_g = [0.0 for _ in range(p)]
            for i in g_idx:
                ui = residuals[i]
                for j in range(p):
                    s_g[j] += x[i][j] * ui
            og = _outer(s_g, s_g)
            for r in range(p):
                for c in range(p):
                    meat[r][c] += og[r][c]

        v = _matmul(_matmul(xtx_inv, meat), xtx_inv)
        if df_correction and n_clusters > 1 and n > p:
            scale = (n_clusters / (n_clusters - 1.0)) * ((n - 1.0) / (n - float(p)))
            v = [[scale * val for val in row] for row in v]
        df_t = float(n_clusters - 1)
    else:
        raise ValueError(f"Unknown cov_type {cov_type!r}")

    se = [math.nan if math.isnan(v[j][j]) else math.sqrt(max(v[j][j], 0.0)) for j in range(p)]
    t = [beta[j] / se[j] if se[j] > 0 else math.nan for j in range(p)]
    pvals = [student_t_pvalue(tj, df_t) for tj in t]

    if df_resid > 0:
        sigma = math.sqrt(rss / df_resid)
    else:
        sigma = math.nan
    r2 = 1.0 - rss / tss if tss > 0 else math.nan
    df_model = p - (1 if has_intercept else 0)
    if df_resid > 0 and not math.isnan(r2):
        adj_r2 = 1.0 - (1.0 - r2) * (n - (1 if has_intercept else 0)) / df_resid
    else:
        adj_r2 = math.nan

    if df_model > 0 and df_resid > 0 and tss > 0:
        if rss > 0:
            f_stat = ((tss - rss) / df_model) / (rss / df_resid)
        else:
            f_stat = math.inf
        f_p = f_pvalue(f_stat, df_model, df_resid)
    else:
        f_stat = math.nan
        f_p = math.nan

    return OLSResult(
        names=tuple(names),
        coef=beta,
        se=se,
        t=t,
        p=pvals,
        n_obs=n,
        n_params=p,
        df_resid=df_resid,
        n_clusters=n_clusters,
        r_squared=r2,
        adj_r_squared=adj_r2,
        sigma=sigma,
        f_stat=f_stat,
        f_pvalue=f_p,
        cov_type=cov_type,
        formula=formula,
    )


def fit(
    formula: str | Formula,
    table: DesignTable,
    *,
    cov_type: CovType = "nonrobust",
    cluster: str | None = None,
) -> OLSResult:
    """Fit ``formula`` by OLS on the columns of ``table``."""
    parsed = parse_formula(formula) if isinstance(formula, str) else formula
    y = table.numeric_column(parsed.outcome)
    x = design_matrix(table, parsed)
    clusters = None
    if cluster is not None:
        clusters = [str(v) for v in table.column(cluster)]
    return ols(
        y=y,
        x=x,
        names=list(parsed.regressors),
        cov_type=cov_type,
        clusters=clusters,
        formula=str(parsed),
    )


def omitted_variable_bias(
    table: DesignTable, *, model: OutcomeModel, formula: str | Formula
) -> dict[str, float]:
    """
    Expected bias of each estimated term when the true model is ``model``.

    bias = (X'X)^{-1} X'Z g, where Z holds the true regressors missing from the
    formula and g their coefficients. A dropped intercept counts as omitted.
    """
    parsed = parse_formula(formula) if isinstance(formula, str) else formula
    x = design_matrix(table, parsed)
    omitted = [name for name in model.terms if name not in parsed.terms]

    zg = [0.0 if parsed.intercept else model.intercept for _ in range(table.n_rows)]
    for name in omitted:
        gamma = model.true_value(name)
        for i, z in enumerate(_term_values(table, name)):
            zg[i] += gamma * z

    xt = _transpose(x)
    try:
        xtx_inv = _invert_square(_matmul(xt, x))
    except RankDeficiencyError as exc:
        raise RankDeficiencyError(
            f"Regressors {list(parsed.regressors)} are perfectly collinear in this design"
        ) from exc
    bias = _matvec(xtx_inv, _matvec(xt, zg))
    return dict(zip(parsed.regressors, bias, strict=True))
