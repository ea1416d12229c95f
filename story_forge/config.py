"""App configuration (LLM connection, round settings, prompt overrides).

Stored as {data_dir}/config.json. get_config() returns defaults merged with
the stored values, then environment overrides for the LLM connection:

    STORY_FORGE_LLM_URL       llm.provider_url
    STORY_FORGE_LLM_API_KEY   llm.api_key
    STORY_FORGE_LLM_MODEL     llm.model
    STORY_FORGE_LLM_FORMAT    llm.provider_format  ("openai" | "koboldcpp")

Environment values are never written back to config.json.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any

from story_forge.llm import HttpLLM

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "",
        "api_key": "",
        "provider_format": "openai",
        "model": "",
        "timeout": 120.0,
    },
    "default_scene": "The adventure is just beginning...",
    "recent_event_count": 5,
    "concurrent_proposals": True,
    "prompts": {},
}

_ENV_OVERRIDES: dict[str, str] = {
    "STORY_FORGE_LLM_URL": "provider_url",
    "STORY_FORGE_LLM_API_KEY": "api_key",
    "STORY_FORGE_LLM_MODEL": "model",
    "STORY_FORGE_LLM_FORMAT": "provider_format",
}

_SCALARS = ("default_scene", "recent_event_count", "concurrent_proposals")


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _stored_config(data_dir: Path) -> dict[str, Any]:
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    path = _config_path(data_dir)
    if path.is_file():
        stored = json.loads(path.read_text())
        if isinstance(stored.get("llm"), dict):
            config["llm"].update(stored["llm"])
        for key in _SCALARS:
            if key in stored:
                config[key] = stored[key]
        if isinstance(stored.get("prompts"), dict):
            for stage, parts in stored["prompts"].items():
                if isinstance(parts, dict):
                    config["prompts"][stage] = dict(parts)
    return config


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = _stored_config(data_dir)
    for env_name, key in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config["llm"][key] = value
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    llm is merged key-by-key, prompts stage-by-stage, scalars overwritten.
    """
    config = _stored_config(data_dir)
    if "llm" in fields:
        config["llm"].update(fields["llm"])
    for key in _SCALARS:
        if key in fields:
            config[key] = fields[key]
    if "prompts" in fields:
        for stage, parts in fields["prompts"].items():
            config["prompts"].setdefault(stage, {}).update(parts)
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)


def build_llm(config: dict[str, Any]) -> HttpLLM:
    """Construct the HTTP collaborator from the llm section of a config."""
    llm_conf = config["llm"]
    return HttpLLM(
        provider_url=llm_conf.get("provider_url", ""),
        api_key=llm_conf.get("api_key", ""),
        provider_format=llm_conf.get("provider_format", "openai"),
        model=llm_conf.get("model", ""),
        timeout=float(llm_conf.get("timeout", 120.0)),
    )
