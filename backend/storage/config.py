"""App configuration (reasoning provider, run limits, template overrides)."""

import copy
from pathlib import Path
from typing import Any

from .core import read_json, write_json

_CONFIG_DEFAULTS: dict[str, Any] = {
    "provider": "openai",
    "provider_url": "",
    "api_key": "",
    "model": "",
    "request_timeout": 120.0,
    "max_iterations": 20,
    "run_timeout": 300.0,
    "parallel_tool_calls": True,
    "tool_base_url": "",
    "phase_templates": {},
}


def get_config(path: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    stored = read_json(path, {})
    for key, value in stored.items():
        if key == "phase_templates" and isinstance(value, dict):
            config["phase_templates"].update(value)
        elif key in config:
            config[key] = value
    return config


def update_config(path: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    phase_templates is merged per phase; an empty string removes an override.
    Unknown keys are ignored.
    """
    config = get_config(path)
    for key, value in fields.items():
        if key == "phase_templates" and isinstance(value, dict):
            for phase, template in value.items():
                if template:
                    config["phase_templates"][phase] = template
                else:
                    config["phase_templates"].pop(phase, None)
        elif key in config:
            config[key] = value
    write_json(path, config)
    return config
