"""Configuration loading with YAML parsing and validation."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from .schema import PipelineConfig


def load_config(config_path: Path | str) -> PipelineConfig:
    """
    Load and validate pipeline configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated PipelineConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    yaml_content = config_path.read_text()

    return pydantic_yaml.parse_yaml_raw_as(PipelineConfig, yaml_content)


def apply_overrides(
    config: PipelineConfig,
    overrides: dict[str, Any],
) -> PipelineConfig:
    """
    Return a re-validated copy of config with dotted-key overrides applied.

    ``None`` values are skipped so unset CLI options leave the file value
    in place. Keys such as ``"search.databases"`` address nested sections.

    Raises:
        KeyError: If a dotted key names a section that does not exist
        pydantic.ValidationError: If the overridden config is invalid
    """
    config_dict = config.model_dump()

    for key, value in overrides.items():
        if value is None:
            continue
        parts = key.split(".")
        target = config_dict
        for part in parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                raise KeyError(f"Unknown config section: {part}")
            target = target[part]
        target[parts[-1]] = value

    return PipelineConfig.model_validate(config_dict)


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> PipelineConfig:
    """
    Load config from YAML and apply dictionary overrides.

    Useful for CLI flags that override config file values, e.g.
    ``{"curation.evalue_threshold": 1e-5, "taxonomy.mode": "local"}``.
    """
    return apply_overrides(load_config(config_path), overrides)
