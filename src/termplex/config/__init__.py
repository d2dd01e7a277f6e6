"""Configuration management module."""

from .loader import TermplexConfig, find_config_file, load_config, save_config

__all__ = ["TermplexConfig", "load_config", "save_config", "find_config_file"]
