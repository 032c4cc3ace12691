from __future__ import annotations

import csv
import json
import math
from dataclasses import dataclass, field
from html import escape
from pathlib import Path
from typing import TypeAlias

from econ_doe_tutorial.logging_utils import jsonable
from econ_doe_tutorial.models import DesignTable
from econ_doe_tutorial.plotting import write_svg


@dataclass(frozen=True)
class Paragraph:
    text: str


@dataclass(frozen=True)
class TableBlock:
    key: str  # file stem for the CSV copy
    caption: str
    rows: list[dict[str, object]]


@dataclass(frozen=True)
class RegressionBlock:
    caption: str
    summary: str


@dataclass(frozen=True)
class FigureBlock:
    filename: str
    caption: str
    svg: str


Block: TypeAlias = Paragraph | TableBlock | RegressionBlock | FigureBlock


@dataclass(frozen=True)
class Chapter:
    key: str
    title: str
    blocks: list[Block] = field(default_factory=list)


def table_rows(table: DesignTable, *, digits: int = 3) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for i, row in enumerate(table.rows(), start=1):
        out: dict[str, object] = {"run": i}
        for name, value in row.items():
            out[name] = round(value, digits) if isinstance(value, float) else value
        rows.append(out)
    return rows


def _cell(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return "n/a"
    return str(value)


def _html_table(rows: list[dict[str, object]]) -> str:
    if not rows:
        return "<p><em>(empty)</em></p>"
    headers = list(rows[0].keys())
    parts = ["<div class='scroll'><table>", "<thead><tr>"]
    parts.extend(f"<th>{escape(str(h))}</th>" for h in headers)
    parts.append("</tr></thead><tbody>")
    for row in rows:
        cells = "".join(f"<td>{escape(_cell(row.get(h)))}</td>" for h in headers)
        parts.append(f"<tr>{cells}</tr>")
    parts.append("</tbody></table></div>")
    return "\n".join(parts)


_CSS = """
body{font-family: ui-sans-serif, system-ui; max-width: 980px; margin: 2rem auto; color:#111827;}
h1{font-size:1.8rem} h2{margin-top:2.5rem; border-bottom:1px solid #e5e7eb}
.scroll{max-height:360px; overflow:auto; border:1px solid #e5e7eb; margin:0.5rem 0 1rem}
table{border-collapse:collapse; font-size:0.85rem}
th,td{padding:3px 10px; text-align:right; border-bottom:1px solid #f3f4f6}
th{position:sticky; top:0; background:#f9fafb}
pre{background:#f9fafb; padding:0.8rem; overflow:auto; font-size:0.82rem}
figcaption,.caption{color:#4b5563; font-size:0.9rem}
"""


def render_html(*, title: str, intro: list[str], chapters: list[Chapter]) -> str:
    parts = [
        "<!DOCTYPE html>",
        "<html lang='en'><head><meta charset='utf-8'>",
        f"<title>{escape(title)}</title>",
        f"<style>{_CSS}</style>",
        "</head><body>",
        f"<h1>{escape(title)}</h1>",
    ]
    parts.extend(f"<p>{escape(p)}</p>" for p in intro)
    parts.append("<ol>")
    parts.extend(f"<li><a href='#{escape(c.key)}'>{escape(c.title)}</a></li>" for c in chapters)
    parts.append("</ol>")

    for chapter in chapters:
        parts.append(f"<h2 id='{escape(chapter.key)}'>{escape(chapter.title)}</h2>")
        for block in chapter.blocks:
            if isinstance(block, Paragraph):
                parts.append(f"<p>{escape(block.text)}</p>")
            elif isinstance(block, TableBlock):
                parts.append(f"<p class='caption'>{escape(block.caption)}</p>")
                parts.append(_html_table(block.rows))
            elif isinstance(block, RegressionBlock):
                parts.append(f"<p class='caption'>{escape(block.caption)}</p>")
                parts.append(f"<pre>{escape(block.summary)}</pre>")
            elif isinstance(block, FigureBlock):
                parts.append(
                    f"<figure><img src='{escape(block.filename)}' alt='{escape(block.caption)}'>"
                    f"<figcaption>{escape(block.caption)}</figcaption></figure>"
                )
    parts.append("</body></html>")
    return "\n".join(parts) + "\n"


def _write_csv(rows: list[dict[str, object]], out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if not rows:
        out_path.write_text("", encoding="utf-8")
        return
    with out_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows({k: _cell(v) for k, v in row.items()} for row in rows)


def write_report(
    *,
    out_dir: Path,
    title: str,
    intro: list[str],
    chapters: list[Chapter],
    metadata: dict[str, object],
) -> list[Path]:
    """Write report.html plus CSV/SVG copies of every block; returns written paths."""
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []

    for chapter in chapters:
        for block in chapter.blocks:
            if isinstance(block, TableBlock):
                path = out_dir / "tables" / f"{chapter.key}_{block.key}.csv"
                _write_csv(block.rows, path)
                written.append(path)
            elif isinstance(block, FigureBlock):
                written.append(write_svg(out_dir / block.filename, block.svg))

    html_path = out_dir / "report.html"
    html_path.write_text(render_html(title=title, intro=intro, chapters=chapters), encoding="utf-8")
    written.append(html_path)

    meta_path = out_dir / "run_metadata.json"
    meta_path.write_text(
        json.dumps(jsonable(metadata), indent=2, ensure_ascii=False), encoding="utf-8"
    )
    written.append(meta_path)

    readme_lines = [
        f"# {title}",
        "",
        "Open `report.html` in a browser.",
        "",
        "Chapters:",
        *[f"- {c.title}" for c in chapters],
        "",
        "Artifacts:",
        "- `report.html`: narrative, scrollable tables and regression summaries",
        "- `tables/*.csv`: every table shown in the report",
        "- `fig_*.svg`: correlation heatmaps and estimate charts",
        "- `run_metadata.json`: parameters + seeds",
        "",
    ]
    readme_path = out_dir / "README.md"
    readme_path.write_text("\n".join(readme_lines), encoding="utf-8")
    written.append(readme_path)
    return written
