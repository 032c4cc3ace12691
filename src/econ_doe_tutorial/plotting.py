from __future__ import annotations

import math
from dataclasses import dataclass
from html import escape
from pathlib import Path


@dataclass(frozen=True)
class BarGroup:
    label: str
    values: tuple[float, ...]  # one bar per series


def _clamp01(x: float) -> float:
    if x < 0.0:
        return 0.0
    if x > 1.0:
        return 1.0
    return x


def _rgb(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"


def _lerp(a: int, b: int, t: float) -> int:
    t = _clamp01(t)
    return int(round(a + (b - a) * t))


def _diverging_color(value: float, *, max_abs: float) -> str:
    """
    Maps negative -> red, 0 -> white, positive -> blue; nan -> light grey.
    """
    if math.isnan(value):
        return _rgb(229, 231, 235)
    if max_abs <= 0:
        return _rgb(255, 255, 255)
    t = _clamp01(abs(value) / max_abs)
    if value >= 0:
        return _rgb(_lerp(255, 37, t), _lerp(255, 99, t), _lerp(255, 235, t))
    return _rgb(_lerp(255, 220, t), _lerp(255, 38, t), _lerp(255, 38, t))


_STYLE = [
    "<style>",
    "text{font-family: ui-sans-serif, system-ui; fill:#111827;}",
    ".axis{stroke:#6b7280; stroke-width:1}",
    ".title{font-size:18px; font-weight:700}",
    ".label{font-size:12px;}",
    ".celltext{font-size:12px; fill:#111827}",
    "</style>",
]


def grouped_bar_chart_svg(
    *,
    title: str,
    groups: list[BarGroup],
    series_labels: list[str],
    y_label: str,
    width: int = 900,
    height: int = 420,
) -> str:
    """Grouped bars around a zero baseline, so negative values hang below it."""
    margin_l = 80
    margin_r = 20
    margin_t = 60
    margin_b = 80

    chart_w = width - margin_l - margin_r
    chart_h = height - margin_t - margin_b

    flat = [v for g in groups for v in g.values]
    max_val = max(flat + [0.0])
    min_val = min(flat + [0.0])
    if max_val == min_val:
        max_val += 1.0
    span = (max_val - min_val) * 1.10
    top = max_val + (span - (max_val - min_val)) / 2

    def y(v: float) -> float:
        return margin_t + chart_h * (top - v) / span

    palette = ["#9ca3af", "#2563eb", "#dc2626", "#16a34a"]
    group_w = chart_w / max(len(groups), 1)
    n_series = max(len(series_labels), 1)
    bar_w = group_w * 0.7 / n_series

    parts: list[str] = []
    parts.append(f"<svg xmlns='http://www.w3.org/2000/svg' width='{width}' height='{height}'>")
    parts.extend(_STYLE)
    parts.append(f"<text class='title' x='{margin_l}' y='28'>{escape(title)}</text>")
    parts.append(
        f"<line class='axis' x1='{margin_l}' y1='{margin_t}' x2='{margin_l}' "
        f"y2='{margin_t + chart_h}'/>"
    )
    parts.append(
        f"<line class='axis' x1='{margin_l}' y1='{y(0.0):.1f}' x2='{margin_l + chart_w}' "
        f"y2='{y(0.0):.1f}'/>"
    )
    parts.append(f"<text class='label' x='10' y='{margin_t - 8}'>{escape(y_label)}</text>")

    for idx, label in enumerate(series_labels):
        color = palette[idx % len(palette)]
        lx = margin_l + idx * 140
        parts.append(f"<rect x='{lx}' y='38' width='12' height='12' fill='{color}'/>")
        parts.append(f"<text class='label' x='{lx + 18}' y='48'>{escape(label)}</text>")

    for gi, group in enumerate(groups):
        g0 = margin_l + gi * group_w + group_w * 0.15
        for si, value in enumerate(group.values):
            color = palette[si % len(palette)]
            x0 = g0 + si * bar_w
            y_top = min(y(value), y(0.0))
            h = abs(y(value) - y(0.0))
            parts.append(
                f"<rect x='{x0:.1f}' y='{y_top:.1f}' width='{bar_w * 0.95:.1f}' "
                f"height='{h:.1f}' fill='{color}'/>"
            )
            text_y = y(value) - 6 if value >= 0 else y(value) + 14
            parts.append(
                f"<text class='label' x='{x0 + bar_w / 2:.1f}' y='{text_y:.1f}' "
                f"text-anchor='middle'>{value:.2f}</text>"
            )
        parts.append(
            f"<text class='label' x='{g0 + n_series * bar_w / 2:.1f}' "
            f"y='{margin_t + chart_h + 22}' text-anchor='middle'>{escape(group.label)}</text>"
        )

    parts.append("</svg>")
    return "\n".join(parts)


def heatmap_svg(
    *,
    title: str,
    x_labels: list[str],
    y_labels: list[str],
    values: list[list[float]],
    cell_px: int = 56,
    max_abs: float | None = None,
) -> str:
    n_x = len(x_labels)
    n_y = len(y_labels)
    if n_y != len(values) or any(len(row) != n_x for row in values):
        raise ValueError("values must be a (len(y_labels) x len(x_labels)) matrix")

    margin_l = 100
    margin_r = 20
    margin_t = 50
    margin_b = 60

    width = margin_l + n_x * cell_px + margin_r
    height = margin_t + n_y * cell_px + margin_b

    if max_abs is None:
        finite = [abs(v) for row in values for v in row if not math.isnan(v)]
        max_abs = max(finite + [1e-9])

    parts: list[str] = []
    parts.append(f"<svg xmlns='http://www.w3.org/2000/svg' width='{width}' height='{height}'>")
    parts.extend(_STYLE)
    parts.append(f"<text class='title' x='10' y='28'>{escape(title)}</text>")

    for yi, ylab in enumerate(y_labels):
        y = margin_t + yi * cell_px
        parts.append(
            f"<text class='label' x='{margin_l - 10}' y='{y + cell_px / 2:.1f}' "
            f"text-anchor='end' dominant-baseline='middle'>{escape(ylab)}</text>"
        )
        for xi in range(n_x):
            x = margin_l + xi * cell_px
            v = values[yi][xi]
            color = _diverging_color(v, max_abs=max_abs)
            text = "n/a" if math.isnan(v) else f"{v:.2f}"
            parts.append(
                f"<rect x='{x}' y='{y}' width='{cell_px}' height='{cell_px}' "
                f"fill='{color}' stroke='#e5e7eb'/>"
            )
            parts.append(
                f"<text class='celltext' x='{x + cell_px / 2:.1f}' y='{y + cell_px / 2:.1f}' "
                f"text-anchor='middle' dominant-baseline='middle'>{text}</text>"
            )

    for xi, xlab in enumerate(x_labels):
        x_center = margin_l + xi * cell_px + cell_px / 2
        y_text = margin_t + n_y * cell_px + 22
        parts.append(
            f"<text class='label' x='{x_center:.1f}' y='{y_text:.1f}' "
            f"text-anchor='middle'>{escape(xlab)}</text>"
        )

    parts.append("</svg>")
    return "\n".join(parts)


def write_svg(out_path: str | Path, svg: str) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(svg, encoding="utf-8")
    return out_path
