"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. Built-in defaults    -- _DEFAULTS below
#   2. config/config.yaml   -- Static defaults checked into the repo
#   3. .env / environment   -- Per-deployment values via Settings
#
# _deep_merge does recursive dict merging:
#   base = {"chunking": {"size": 1000}}
#   overrides = {"chunking": {"overlap": 150}}
#   result = {"chunking": {"size": 1000, "overlap": 150}}
# ──────────────────────────────────────────────────────────────────────
"""

import copy
from pathlib import Path

import yaml

from tutorkb.config.settings import Settings

_DEFAULTS: dict = {
    "chunking": {"size": 1000, "overlap": 200},
    "retrieval": {"threshold": 0.3, "limit": 3},
    "embedding": {"batch_size": 64, "concurrency": 4},
    "bulk": {"concurrency": 1, "await_ingestion": True},
    "activity": {"recent_limit": 10},
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config = copy.deepcopy(_DEFAULTS)

    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
        _deep_merge(config, yaml_config)

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "storage": {
            "database_path": settings.database_path,
            "storage_dir": settings.storage_dir,
            "max_upload_bytes": settings.max_upload_bytes,
        },
        "embedding": {
            "provider": settings.embedding_provider,
            "dimension": settings.embedding_dimension,
            "timeout_seconds": settings.embedding_timeout_seconds,
        },
        "transcript": {
            "timeout_seconds": settings.transcript_timeout_seconds,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(config, env_overrides)
    return config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
