"""YAML config loading with env var expansion and overrides."""

import os
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import ValidationError

from livesync.errors import ConfigValidationError

from .models import LiveSyncConfig

CONFIG_FILENAME = ".livesync.yaml"

# Environment variables that override the config file
_ENV_OVERRIDES = {
    "COUCHDB_URL": ("couchdb", "url"),
    "COUCHDB_USER": ("couchdb", "username"),
    "COUCHDB_PASSWORD": ("couchdb", "password"),
    "COUCHDB_DATABASE": ("couchdb", "database"),
    "VAULT_ROOT": ("vault_root",),
}


def load_config(cli_path: str | None = None, **overrides: Any) -> LiveSyncConfig:
    """Load config with resolution order: CLI > project-local > user-global > defaults.

    Environment variables override the file; keyword *overrides* (CLI flags)
    override both. Overrides whose value is None are ignored.
    """
    raw = _load_file(cli_path)
    _apply_env(raw)
    for key, value in overrides.items():
        if value is not None:
            raw[key] = value
    try:
        return LiveSyncConfig(**raw)
    except ValidationError as e:
        raise ValueError(f"Invalid config: {e}") from e


def _load_file(cli_path: str | None) -> dict[str, Any]:
    config_paths = [
        Path(cli_path) if cli_path else None,
        Path(CONFIG_FILENAME),
        Path.home() / ".livesync" / "config.yaml",
    ]
    if cli_path and not Path(cli_path).exists():
        raise ValueError(f"Config file not found: {cli_path}")

    for path in config_paths:
        if path and path.exists():
            try:
                with open(path) as f:
                    raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
            if raw is None:
                continue
            if not isinstance(raw, dict):
                raise ValueError(f"Invalid config in {path}: expected a mapping")
            raw = _expand_env_vars(raw)
            try:
                LiveSyncConfig(**raw)
            except ValidationError as e:
                raise ValueError(f"Invalid config in {path}: {e}") from e
            return raw
    return {}


def _apply_env(raw: dict[str, Any]) -> None:
    for var, keys in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value is None:
            continue
        target = raw
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} references in strings."""
    if isinstance(obj, str):
        return re.sub(r"\$\{(\w+)\}", lambda m: os.environ.get(m.group(1), ""), obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def validate_config(config: LiveSyncConfig) -> list[str]:
    """Return a list of configuration problems (empty means valid)."""
    errors: list[str] = []
    if urlparse(config.couchdb.url).scheme not in ("http", "https"):
        errors.append(f"COUCHDB_URL must be an http(s) URL: {config.couchdb.url!r}")
    if not config.couchdb.username:
        errors.append("COUCHDB_USER is required")
    if not config.couchdb.password:
        errors.append("COUCHDB_PASSWORD is required")
    if not config.vault_root:
        errors.append("VAULT_ROOT is required")
    elif not Path(config.vault_root).is_dir():
        errors.append(f"VAULT_ROOT is not a directory: {config.vault_root}")
    if not config.extensions:
        errors.append("at least one file extension is required")
    return errors


def require_valid_config(config: LiveSyncConfig) -> LiveSyncConfig:
    """Raise ConfigValidationError unless *config* is usable."""
    errors = validate_config(config)
    if errors:
        raise ConfigValidationError(errors)
    return config


# Default YAML template for `livesync init`
DEFAULT_CONFIG_TEMPLATE = """\
# .livesync.yaml

# CouchDB (Self-hosted LiveSync backend)
couchdb:
  url: "http://localhost:5984"
  database: "obsidian-livesync"
  username: "${COUCHDB_USER}"
  password: "${COUCHDB_PASSWORD}"
  timeout: 30                  # seconds per request
  retries: 1                   # retries on transient network errors (0 or 1)

# Vault
vault_root: "."
extensions: [".md"]
ignore_dirs: [".git", ".obsidian", "node_modules"]

# Sync behaviour
debounce_ms: 200               # watch mode quiet period per file
max_concurrency: 8             # files in flight per batch

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
