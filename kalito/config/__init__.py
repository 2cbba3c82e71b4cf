"""Configuration module for kalito."""

from kalito.config.loader import load_config, get_config_path, save_config
from kalito.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path", "save_config"]
