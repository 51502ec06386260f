from __future__ import annotations
from .schemas import Config
from pathlib import Path

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    """
    Read a calohits TOML file into a validated Config.

    Missing sections fall back to their defaults, so an empty file gives
    Config(). Raises FileNotFoundError for a missing path and pydantic's
    ValidationError for bad values.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Config file not found: {p}")
    data = tomllib.loads(p.read_text())
    return Config(**data)
