"""
Reads ``config/config.yaml`` into an ``AppConfig``.

String values may contain ``${VAR}`` or ``${VAR:default}`` placeholders,
expanded from the environment (after ``.env`` in the project root has been
loaded). Secrets and endpoints can also be set directly through the
variables in ``ENV_OVERRIDES``, which win over the file.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from portfolio_agent.config.settings import AppConfig

logger = logging.getLogger(__name__)

# src/portfolio_agent/config/loader.py -> repository root
PROJECT_ROOT = Path(__file__).resolve().parents[3]

load_dotenv(PROJECT_ROOT / ".env")

_PLACEHOLDER = re.compile(r"\$\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?::([^}]*))?\}")

# Environment variable -> path of keys inside the config mapping
ENV_OVERRIDES: Dict[str, Tuple[str, ...]] = {
    "ENVIRONMENT": ("system", "environment"),
    "LOG_LEVEL": ("system", "log_level"),
    "LOG_FILE": ("system", "log_file"),
    "BIRDEYE_API_KEY": ("market_data", "api_key"),
    "OPENAI_API_KEY": ("advisory", "primary", "api_key"),
    "XAI_API_KEY": ("advisory", "secondary", "api_key"),
    "SOLANA_RPC_URL": ("solana", "rpc_url"),
    "SOLANA_PRIVATE_KEY": ("solana", "private_key"),
    "HISTORY_DB_PATH": ("storage", "db_path"),
}


def expand_placeholders(value: Any) -> Any:
    """Expand ``${VAR[:default]}`` in every string of a parsed YAML tree."""
    if isinstance(value, dict):
        return {key: expand_placeholders(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_placeholders(item) for item in value]
    if not isinstance(value, str):
        return value

    def substitute(match: "re.Match[str]") -> str:
        name, default = match.group(1), match.group(2)
        resolved = os.environ.get(name)
        if resolved is not None:
            return resolved
        if default is not None:
            return default.strip()
        logger.warning(f"${{{name}}} is not set, substituting an empty string")
        return ""

    return _PLACEHOLDER.sub(substitute, value)


def _section_defaults(path: Tuple[str, ...]) -> Dict[str, Any]:
    """model_dump() of the default AppConfig at ``path``."""
    node: Any = AppConfig()
    for key in path:
        node = getattr(node, key)
    return node.model_dump()


def apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Write every non-empty ENV_OVERRIDES variable into ``data`` in place."""
    for env_name, path in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue

        node = data
        for depth, key in enumerate(path[:-1]):
            child = node.get(key)
            if not isinstance(child, dict):
                # nested sections like advisory.primary have required fields
                child = _section_defaults(path[: depth + 1]) if depth else {}
                node[key] = child
            node = child
        node[path[-1]] = value
        logger.debug(f"{env_name} overrides {'.'.join(path)}")
    return data


class ConfigLoader:
    """
    Loads and caches the application config from ``config_dir``.

    Example:
        loader = ConfigLoader()
        config = loader.load_app_config()
        config = loader.reload()
    """

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else PROJECT_ROOT / "config"
        self._cached: Optional[AppConfig] = None

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """Parsed, placeholder-expanded ``<config_name>.yaml``; raises FileNotFoundError."""
        path = self.config_dir / f"{config_name}.yaml"
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        logger.debug(f"Read {path}")
        return expand_placeholders(raw)

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        if use_cache and self._cached is not None:
            return self._cached

        try:
            data = self.load_yaml("config")
        except FileNotFoundError:
            logger.warning(f"No config.yaml in {self.config_dir}, running on defaults")
            data = {}

        try:
            config = AppConfig(**apply_env_overrides(data))
        except ValidationError as e:
            logger.error(f"Invalid configuration in {self.config_dir}: {e}")
            raise

        logger.info(f"Configuration loaded ({config.system.environment.value})")
        if use_cache:
            self._cached = config
        return config

    def reload(self) -> AppConfig:
        self._cached = None
        return self.load_app_config()


_loader: Optional[ConfigLoader] = None


def load_config(config_dir: Optional[Path] = None) -> AppConfig:
    """Load the application configuration through a shared loader."""
    global _loader
    if _loader is None or config_dir is not None:
        _loader = ConfigLoader(config_dir)
    return _loader.load_app_config()
