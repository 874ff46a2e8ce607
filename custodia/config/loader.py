"""Load custodia.yaml into a validated CustodiaConfig.

String values may reference the environment as ``${VAR}`` or
``${VAR:-fallback}``; this is how deployments point ``database.path`` at a
mounted volume or swap the FX table without editing the file. An unset
variable with no fallback expands to an empty string and is logged.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from custodia.config.schema import CustodiaConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = [
    Path("custodia.yaml"),
    Path("~/.custodia/config.yaml"),
]

_ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _expand_env_vars(value: Any, where: str = "") -> Any:
    """Expand ${VAR} and ${VAR:-fallback} in every string of a parsed document."""
    if isinstance(value, dict):
        return {k: _expand_env_vars(v, f"{where}.{k}" if where else str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item, f"{where}[{i}]") for i, item in enumerate(value)]
    if not isinstance(value, str):
        return value

    def substitute(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        if fallback is None:
            logger.warning("%s references unset environment variable %s", where or "config", name)
            return ""
        return fallback

    return _ENV_REF.sub(substitute, value)


def _find_config_file(explicit_path: str | Path | None = None) -> Path | None:
    if explicit_path is not None:
        path = Path(explicit_path).expanduser()
        if path.exists():
            return path
        logger.warning("Config file not found: %s", path)
        return None

    for candidate in DEFAULT_CONFIG_PATHS:
        resolved = candidate.expanduser()
        if resolved.exists():
            logger.info("Using config: %s", resolved)
            return resolved
    return None


def _read_document(config_path: Path) -> dict[str, Any]:
    with open(config_path) as f:
        raw = yaml.safe_load(f)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path} must hold a mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - set(CustodiaConfig.model_fields))
    if unknown:
        logger.warning("Ignoring unknown config section(s) in %s: %s", config_path, ", ".join(unknown))
    return _expand_env_vars(raw)


def load_config(path: str | Path | None = None) -> CustodiaConfig:
    """Load and validate configuration.

    Resolution order:
    1. Explicit path argument
    2. custodia.yaml in current directory
    3. ~/.custodia/config.yaml
    4. All defaults (no file needed)
    """
    config_path = _find_config_file(path)
    if config_path is None:
        logger.info("No config file found, using defaults")
        return CustodiaConfig()

    logger.info("Loading config from %s", config_path)
    config = CustodiaConfig.model_validate(_read_document(config_path))
    logger.debug(
        "Config loaded: version=%d, database=%s, fx=%s",
        config.version, config.database.path, ",".join(sorted(config.fx.rates)),
    )
    return config


def resolve_path(path_str: str) -> Path:
    """Resolve a path from config, expanding ~ and making absolute."""
    return Path(path_str).expanduser().resolve()
