"""Read census settings from YAML."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from .schema import PipelineConfig


def load_config(config_path: Path | str) -> PipelineConfig:
    """
    Parse and validate a census YAML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If a setting is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return pydantic_yaml.parse_yaml_raw_as(PipelineConfig, config_path.read_text())


def _set_dotted(settings: dict, key: str, value: Any) -> None:
    """Assign ``value`` at a dotted path such as ``oracle.batch_size``."""
    *sections, leaf = key.split(".")
    for section in sections:
        settings = settings[section]
    settings[leaf] = value


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> PipelineConfig:
    """
    Load a YAML file, then replace individual settings.

    Overrides address nested sections with dotted keys, e.g.
    ``{"oracle.rate_limit_per_second": 3, "analysis.excluded_virus_roots": []}``.
    The merged settings are validated again, so an override cannot slip an
    invalid value past the schema.
    """
    settings = load_config(config_path).model_dump()
    for key, value in overrides.items():
        _set_dotted(settings, key, value)

    return PipelineConfig.model_validate(settings)
