from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path


def load_dotenv(
    path: str | os.PathLike[str] = ".env", *, override: bool = False
) -> Mapping[str, str]:
    """Read KEY=VALUE lines (optionally prefixed with `export`) into os.environ."""
    env_path = Path(path)
    if not env_path.exists():
        return {}

    loaded: dict[str, str] = {}
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if not key:
            continue
        if key in os.environ and not override:
            loaded[key] = os.environ[key]
            continue
        os.environ[key] = value
        loaded[key] = value
    return loaded


@dataclass(frozen=True)
class TutorialEnv:
    out_dir: Path
    seed: int
    log_level: str


def _int_var(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def get_tutorial_env(dotenv_path: str | os.PathLike[str] = ".env") -> TutorialEnv:
    load_dotenv(dotenv_path)
    out_dir = os.environ.get("DOE_TUTORIAL_OUT", "").strip() or "reports/latest"
    log_level = os.environ.get("DOE_TUTORIAL_LOG_LEVEL", "").strip().upper() or "INFO"
    return TutorialEnv(
        out_dir=Path(out_dir),
        seed=_int_var("DOE_TUTORIAL_SEED", 7),
        log_level=log_level,
    )
