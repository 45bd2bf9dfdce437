"""YAML configuration loader with environment variable overrides.

Configuration is layered (later layers override earlier):

  1. ``Settings`` defaults  -- the field defaults in ``settings.py``
  2. ``config/config.yaml`` -- static values checked into a deployment
  3. ``.env`` file          -- local overrides (not committed)
  4. Environment vars       -- set at deploy time

``load_config`` reads the YAML file first.  Settings fields that were
explicitly provided (environment, ``.env`` or constructor arguments) are
deep-merged on top; fields still at their default only fill keys the YAML
file leaves out.  Keys that only exist in YAML (e.g. a custom separator list
for the chunker) survive the merge untouched.
"""

from pathlib import Path

import yaml

from kbrag.config.settings import Settings

# config section -> config key -> Settings field
_SETTINGS_KEYS: dict[str, dict[str, str]] = {
    "app": {
        "env": "app_env",
    },
    "embedding": {
        "model": "openai_embedding_model",
        "max_input_chars": "embedding_max_input_chars",
        "batch_size": "embedding_batch_size",
        "max_concurrency": "embedding_max_concurrency",
    },
    "chunking": {
        "chunk_size": "chunk_size",
        "overlap": "chunk_overlap",
    },
    "retrieval": {
        "top_k": "rag_top_k",
        "min_score": "rag_min_score",
        "max_tokens": "rag_max_tokens",
        "diversity_threshold": "rag_diversity_threshold",
    },
    "uploads": {
        "max_bytes": "max_upload_bytes",
    },
    "logging": {
        "level": "log_level",
    },
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file is treated
              as an empty mapping.
        settings: Pre-built settings; a fresh ``Settings()`` is read otherwise.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    explicit = settings.model_fields_set
    env_overrides: dict = {}
    defaults: dict = {}
    for section, keys in _SETTINGS_KEYS.items():
        for key, field in keys.items():
            layer = env_overrides if field in explicit else defaults
            layer.setdefault(section, {})[key] = getattr(settings, field)

    _deep_merge(yaml_config, env_overrides)
    _fill_missing(yaml_config, defaults)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _fill_missing(base: dict, defaults: dict) -> None:
    """Recursively copy keys from defaults that base lacks or leaves null."""
    for key, value in defaults.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            _fill_missing(base[key], value)
        elif base.get(key) is None:
            base[key] = value
