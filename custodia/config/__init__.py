"""Configuration loading, validation, and defaults."""

from custodia.config.loader import load_config
from custodia.config.schema import CustodiaConfig

__all__ = ["load_config", "CustodiaConfig"]
