"""Configuration module for xtwallet."""

from xtwallet.config.loader import load_config, save_config, get_config_path
from xtwallet.config.schema import Config
from xtwallet.config.access import get_config, set_config, clear_config_cache

__all__ = ["Config", "load_config", "save_config", "get_config_path", "get_config", "set_config", "clear_config_cache"]
