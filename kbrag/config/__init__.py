"""Configuration module - exports Settings and load_config."""

from kbrag.config.loader import load_config
from kbrag.config.settings import Settings

__all__ = ["Settings", "load_config"]
