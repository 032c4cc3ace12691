from __future__ import annotations

import json

from econ_doe_tutorial.report import Paragraph, TableBlock
from econ_doe_tutorial.run import TutorialParams, build_tutorial, main


def test_build_tutorial_covers_every_chapter() -> None:
    chapters, meta = build_tutorial(TutorialParams(replications=5, design_replications=2))
    assert [c.key for c in chapters] == [
        "full_factorial",
        "orthogonal_array",
        "ff_simulation",
        "oa_simulation",
        "monte_carlo",
    ]
    assert set(meta) == {
        "params",
        "full_factorial",
        "orthogonal_array",
        "ff_simulation",
        "oa_simulation",
        "monte_carlo",
    }
    assert meta["full_factorial"]["runs"] == 16
    assert meta["full_factorial"]["confounded_pairs"] == []
    assert meta["orthogonal_array"]["runs"] == 8
    assert meta["orthogonal_array"]["constant_columns"] == ["AxBxC"]
    assert meta["oa_simulation"]["corr_c_axb"] == 1.0
    assert abs(meta["oa_simulation"]["expected_bias"]["AxB"] - 1.0) < 1e-12

    oa_text = " ".join(b.text for b in chapters[3].blocks if isinstance(b, Paragraph))
    assert "cannot be estimated" in oa_text

    mc_tables = [b.key for b in chapters[4].blocks if isinstance(b, TableBlock)]
    assert mc_tables == ["ff_true", "ff_no_interaction", "oa_no_c"]


def test_build_tutorial_is_reproducible() -> None:
    params = TutorialParams(seed=3, replications=3, design_replications=1)
    _, meta_a = build_tutorial(params)
    _, meta_b = build_tutorial(params)
    assert meta_a["monte_carlo"] == meta_b["monte_carlo"]
    assert meta_a["ff_simulation"] == meta_b["ff_simulation"]


def test_main_writes_report(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "report"
    main(
        ["--out", str(out_dir), "--replications", "3", "--design-replications", "2", "--seed", "1"]
    )

    assert (out_dir / "report.html").exists()
    assert (out_dir / "README.md").exists()
    assert (out_dir / "tables" / "full_factorial_design_raw.csv").exists()
    assert (out_dir / "tables" / "orthogonal_array_aliases.csv").exists()
    assert (out_dir / "fig_full_factorial_correlations.svg").exists()
    assert (out_dir / "fig_mc_oa_no_c.svg").exists()

    meta = json.loads((out_dir / "run_metadata.json").read_text(encoding="utf-8"))
    assert meta["params"]["seed"] == 1
    assert meta["params"]["replications"] == 3
    html = (out_dir / "report.html").read_text(encoding="utf-8")
    assert "Orthogonal array" in html
