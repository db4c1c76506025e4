from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError as SchemaValidationError

from ..models.field_catalog import FieldCatalog, FieldDefinition, FieldKind
from ..services.existing_cache import DEFAULT_TTL_SECONDS

"""Configuration loader.

Responsibilities:
- Load the YAML import configuration (field catalog + runtime settings)
- Validate it against catalog_schema.json (shipped next to this module)
- Apply defaults (cache TTL 300s, error log dir ./logs)
"""

__all__ = [
    "ConfigError",
    "ImportConfig",
    "load_config",
    "default_config",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
]

_config_dir = Path(__file__).parent
SCHEMA_PATH = _config_dir / "catalog_schema.json"
DEFAULT_CONFIG_PATH = _config_dir / "default_import.yml"
DEFAULT_ERROR_LOG_DIR = "./logs"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class ImportConfig:
    catalog: FieldCatalog
    existing_cache_ttl_seconds: float = DEFAULT_TTL_SECONDS
    error_log_dir: str = DEFAULT_ERROR_LOG_DIR


def _validate_config_schema(data: Any) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: if the schema file is missing or not valid JSON, or if the
            config data violates the schema (missing keys, wrong types, extra keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except SchemaValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_catalog(raw_fields: list[dict[str, Any]]) -> FieldCatalog:
    definitions = [
        FieldDefinition(
            key=f["key"],
            label=f["label"],
            required=bool(f.get("required", False)),
            kind=FieldKind(f.get("kind", "text")),
        )
        for f in raw_fields
    ]
    try:
        catalog = FieldCatalog(definitions)
    except ValueError as e:
        raise ConfigError(f"config validation failed: {e}") from e
    if not catalog.required_keys:
        raise ConfigError("config validation failed: at least one field must be required")
    return catalog


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    return ImportConfig(
        catalog=_build_catalog(data["fields"]),
        existing_cache_ttl_seconds=float(data.get("existing_cache_ttl_seconds", DEFAULT_TTL_SECONDS)),
        error_log_dir=data.get("error_log_dir", DEFAULT_ERROR_LOG_DIR),
    )


def default_config() -> ImportConfig:
    """Configuration shipped with the package (default lead field catalog)."""
    return load_config(DEFAULT_CONFIG_PATH)
