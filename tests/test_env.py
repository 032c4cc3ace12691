from __future__ import annotations

import os
from pathlib import Path

import pytest

from econ_doe_tutorial.env import get_tutorial_env, load_dotenv

_VARS = ("DOE_TUTORIAL_OUT", "DOE_TUTORIAL_SEED", "DOE_TUTORIAL_LOG_LEVEL")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    # setenv first so teardown also removes values load_dotenv writes
    for name in _VARS + ("DOE_FOO", "DOE_QUOTED", "DOE_EMPTY"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_load_dotenv_sets_values(tmp_path, monkeypatch) -> None:
    env_file = tmp_path / ".env.test"
    env_file.write_text(
        "\n".join(
            [
                "# comment",
                "DOE_FOO=bar",
                'export DOE_QUOTED="baz"',
                "DOE_EMPTY=",
                "",
            ]
        ),
        encoding="utf-8",
    )

    loaded = load_dotenv(env_file)
    assert loaded["DOE_FOO"] == "bar"
    assert os.environ["DOE_FOO"] == "bar"
    assert loaded["DOE_QUOTED"] == "baz"
    assert os.environ["DOE_EMPTY"] == ""


def test_load_dotenv_does_not_override_existing(tmp_path, monkeypatch) -> None:
    env_file = tmp_path / ".env.test"
    env_file.write_text("DOE_FOO=from_file\n", encoding="utf-8")
    monkeypatch.setenv("DOE_FOO", "from_env")

    loaded = load_dotenv(env_file, override=False)
    assert loaded["DOE_FOO"] == "from_env"
    assert os.environ["DOE_FOO"] == "from_env"


def test_missing_dotenv_is_empty(tmp_path) -> None:
    assert load_dotenv(tmp_path / "nope.env") == {}


def test_tutorial_env_defaults(tmp_path) -> None:
    env = get_tutorial_env(tmp_path / "missing.env")
    assert env.out_dir == Path("reports/latest")
    assert env.seed == 7
    assert env.log_level == "INFO"


def test_tutorial_env_from_dotenv(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "DOE_TUTORIAL_OUT=out/run1\nDOE_TUTORIAL_SEED=42\nDOE_TUTORIAL_LOG_LEVEL=warning\n",
        encoding="utf-8",
    )
    env = get_tutorial_env(env_file)
    assert env.out_dir == Path("out/run1")
    assert env.seed == 42
    assert env.log_level == "WARNING"


def test_tutorial_env_rejects_bad_seed(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("DOE_TUTORIAL_SEED", "seven")
    with pytest.raises(ValueError, match="DOE_TUTORIAL_SEED"):
        get_tutorial_env(tmp_path / "missing.env")
