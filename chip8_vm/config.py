"""
CHIP-8 VM configuration.

Settings come from three layers, later ones winning:
  1. VMConfig defaults
  2. an optional JSON file with a "chip8" object
  3. CHIP8_* environment variables

Example file:

    {"chip8": {"seed": 1234, "trace": false, "cycles_per_frame": 10}}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

ENV_PREFIX = "CHIP8_"


@dataclass
class VMConfig:
    seed: Optional[int] = None          # RNG seed for CXNN; None = OS entropy
    trace: bool = False                 # record + log every executed instruction
    max_cycles: int = 1_000_000         # run() budget before TIMEOUT
    cycles_per_frame: int = 10          # host pacing hint: cycles per 60 Hz frame
    log_level: str = "INFO"
    log_file: Optional[str] = None


NULLABLE = ("seed", "log_file")


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type of the VMConfig field."""
    if value is None:
        if name in NULLABLE:
            return None
        raise ValueError(f"Config key {name!r} cannot be null")
    if name in ("seed", "max_cycles", "cycles_per_frame"):
        if isinstance(value, str):
            if value.strip().lower() in ("", "none"):
                return None if name == "seed" else VMConfig.__dataclass_fields__[name].default
            return int(value, 0)
        return int(value)
    if name == "trace":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return str(value)


def _apply(config: VMConfig, values: Mapping[str, Any]) -> VMConfig:
    known = {f.name for f in fields(VMConfig)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(sorted(unknown))}")
    return replace(config, **{k: _coerce(k, v) for k, v in values.items()})


def from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Collect CHIP8_* overrides, e.g. CHIP8_SEED=42 -> {'seed': '42'}."""
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(VMConfig)}
    out = {}
    for key, value in environ.items():
        if key.startswith(ENV_PREFIX):
            name = key[len(ENV_PREFIX):].lower()
            if name in known:
                out[name] = value
    return out


def load_config(path: Optional[Union[str, Path]] = None,
                environ: Optional[Mapping[str, str]] = None) -> VMConfig:
    """Build a VMConfig from defaults, an optional JSON file and the environment."""
    config = VMConfig()
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        section = data.get("chip8", {})
        if not isinstance(section, dict):
            raise ValueError(f"{path}: 'chip8' must be an object")
        config = _apply(config, section)
    return _apply(config, from_env(environ))
