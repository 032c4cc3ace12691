from __future__ import annotations

import pytest

from econ_doe_tutorial.models import INTERCEPT, DesignTable, OutcomeModel


def _table() -> DesignTable:
    return DesignTable.from_columns(
        {"A": ["1", "2", "1"], "X": [1.5, 2.0, -1.0]}, levels={"A": ("1", "2")}
    )


def test_from_columns_preserves_order_and_levels() -> None:
    t = _table()
    assert t.names == ("A", "X")
    assert t.n_rows == 3
    assert t.levels_of("A") == ("1", "2")
    assert t.levels_of("X") is None
    assert t.is_numeric("X")
    assert not t.is_numeric("A")


def test_with_column_returns_new_table() -> None:
    t = _table()
    t2 = t.with_column("Z", [0, 0, 1])
    assert t2.names == ("A", "X", "Z")
    assert t.names == ("A", "X")


def test_with_column_rejects_duplicates_and_bad_lengths() -> None:
    t = _table()
    with pytest.raises(ValueError, match="already exists"):
        t.with_column("A", [1, 2, 3])
    with pytest.raises(ValueError, match="rows"):
        t.with_column("Z", [1, 2])


def test_drop_select_and_rows() -> None:
    t = _table()
    assert t.drop("A").names == ("X",)
    assert t.drop("A").levels == ()
    assert t.select(["X", "A"]).names == ("X", "A")
    assert t.rows()[1] == {"A": "2", "X": 2.0}
    with pytest.raises(KeyError):
        t.drop("missing")


def test_numeric_column_rejects_labels() -> None:
    with pytest.raises(TypeError, match="recode"):
        _table().numeric_column("A")


def test_replace_column_keeps_position() -> None:
    t = _table().replace_column("A", [-1, 1, -1])
    assert t.names == ("A", "X")
    assert t.column("A") == (-1, 1, -1)
    assert t.levels_of("A") is None


def test_outcome_model_truth_and_validation() -> None:
    model = OutcomeModel(intercept=3.0, coefficients={"A": 2.0}, noise_sd=0.0)
    assert model.true_value(INTERCEPT) == 3.0
    assert model.true_value("A") == 2.0
    assert model.true_value("B") == 0.0
    assert "2*A" in model.describe()
    with pytest.raises(ValueError):
        OutcomeModel(intercept=0.0, coefficients={}, noise_sd=-1.0)


def test_outcome_model_is_hashable_and_keeps_its_own_coefficients() -> None:
    coefs = {"A": 2.0, "AxB": 0.5}
    model = OutcomeModel(intercept=1.0, coefficients=coefs)
    coefs["A"] = 99.0
    assert model.true_value("A") == 2.0
    assert model.terms == ("A", "AxB")
    assert model.coefficients == (("A", 2.0), ("AxB", 0.5))
    assert hash(model) == hash(OutcomeModel(intercept=1.0, coefficients={"A": 2, "AxB": 0.5}))
