"""
Configuration loader with YAML + environment variable support.

Loads and validates configuration files from the config/ directory.
Supports:
- Loading from YAML files
- ${VAR} / ${VAR:default} placeholders
- Environment variable overrides
- Pydantic validation
- Hot reload capability
- Caching for performance
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dotenv import load_dotenv
import logging

from .settings import AppConfig, GateConfig


# Configure logging
logger = logging.getLogger(__name__)

# Get the project root directory (src/tradegate/config -> project root)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# Load environment variables from .env file
load_dotenv(PROJECT_ROOT / ".env")

# YAML file name -> AppConfig section
CONFIG_SECTIONS = {
    "system": "system",
    "gates": "gates",
    "ledger": "ledger",
    "pipeline": "pipeline",
    "senders": "routing",
}


# ============================================================================
# ConfigLoader - Main Configuration Loader
# ============================================================================

class ConfigLoader:
    """
    Configuration loader with YAML + environment variable support.

    Features:
    - Loads configuration from YAML files
    - Overrides with environment variables
    - Validates using Pydantic models
    - Supports hot reload
    - Caches loaded configurations
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration loader.

        Args:
            config_dir: Configuration directory (defaults to PROJECT_ROOT/config)
        """
        self.config_dir = Path(config_dir) if config_dir else (PROJECT_ROOT / "config")
        self._cache: Dict[str, Any] = {}
        logger.info(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            config_name: Name of the config file (without .yaml extension)

        Returns:
            Dictionary containing configuration data

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        config_path = self.config_dir / f"{config_name}.yaml"

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.debug(f"Loading YAML config from: {config_path}")

        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        return self._replace_env_vars(config)

    def _replace_env_vars(self, config: Any) -> Any:
        """
        Recursively replace environment variable placeholders in config.

        Placeholders format: ${ENV_VAR_NAME} or ${ENV_VAR_NAME:default_value}

        Args:
            config: Configuration dictionary or value

        Returns:
            Configuration with environment variables replaced
        """
        if isinstance(config, dict):
            return {k: self._replace_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._replace_env_vars(item) for item in config]
        elif isinstance(config, str):
            if config.startswith("${") and config.endswith("}"):
                env_expr = config[2:-1]

                if ":" in env_expr:
                    var_name, default_value = env_expr.split(":", 1)
                    return os.getenv(var_name.strip(), default_value.strip())
                else:
                    var_name = env_expr.strip()
                    value = os.getenv(var_name)
                    if value is None:
                        logger.warning(f"Environment variable {var_name} not set, using empty string")
                        return ""
                    return value

        return config

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        """
        Load complete application configuration.

        Each YAML file is optional; a missing file leaves that section at
        its defaults.

        Args:
            use_cache: Use cached config if available

        Returns:
            Validated AppConfig instance
        """
        cache_key = "app_config"

        if use_cache and cache_key in self._cache:
            logger.debug("Returning cached app config")
            return self._cache[cache_key]

        logger.info("Loading complete application configuration")

        config_data: Dict[str, Any] = {}
        for file_name, section in CONFIG_SECTIONS.items():
            try:
                config_data[section] = self.load_yaml(file_name)
            except FileNotFoundError:
                logger.warning(f"{file_name}.yaml not found, using defaults")

        config_data = self._apply_env_overrides(config_data)

        try:
            app_config = AppConfig(**config_data)
            logger.info(
                f"Application configuration loaded and validated successfully "
                f"(gates={app_config.gates.config_version}, "
                f"senders={len(app_config.routing.senders)})"
            )
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        if use_cache:
            self._cache[cache_key] = app_config

        return app_config

    def load_gate_config(self, config_name: str = "gates") -> GateConfig:
        """
        Load a standalone GateConfig file.

        Used to build additional engine versions next to the active one.

        Args:
            config_name: Name of the config file (without .yaml extension)

        Returns:
            Validated, frozen GateConfig
        """
        return GateConfig(**self.load_yaml(config_name))

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides to configuration.

        Environment variables format: TRADEGATE_<KEY>
        Example: TRADEGATE_LOG_LEVEL=DEBUG

        Args:
            config: Configuration dictionary

        Returns:
            Configuration with environment overrides applied
        """
        system = config.setdefault("system", {})
        ledger = config.setdefault("ledger", {})
        pipeline = config.setdefault("pipeline", {})
        gates = config.setdefault("gates", {})

        if env_val := os.getenv("TRADEGATE_ENVIRONMENT"):
            system["environment"] = env_val

        if env_val := os.getenv("TRADEGATE_LOG_LEVEL"):
            system["log_level"] = env_val.upper()

        if env_val := os.getenv("TRADEGATE_LEDGER_PATH"):
            ledger["path"] = env_val

        if env_val := os.getenv("TRADEGATE_DEAD_LETTER_PATH"):
            pipeline["dead_letter_path"] = env_val

        if env_val := os.getenv("TRADEGATE_ACTION_THRESHOLD"):
            gates["action_threshold"] = float(env_val)

        return config

    def reload(self) -> AppConfig:
        """
        Reload configuration from disk (hot reload).

        Returns:
            Fresh AppConfig instance
        """
        logger.info("Reloading configuration from disk")
        self._cache.clear()
        return self.load_app_config(use_cache=False)

    def clear_cache(self):
        """Clear the configuration cache."""
        logger.info("Clearing configuration cache")
        self._cache.clear()


# ============================================================================
# Global ConfigLoader Instance
# ============================================================================

_global_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """
    Get or create global ConfigLoader instance.

    Returns:
        Global ConfigLoader instance
    """
    global _global_loader
    if _global_loader is None:
        _global_loader = ConfigLoader()
    return _global_loader


def get_app_config(use_cache: bool = True) -> AppConfig:
    """
    Get complete application configuration.

    Args:
        use_cache: Use cached config if available

    Returns:
        Validated AppConfig instance
    """
    loader = get_config_loader()
    return loader.load_app_config(use_cache=use_cache)


def reload_config() -> AppConfig:
    """
    Reload configuration from disk (hot reload).

    Returns:
        Fresh AppConfig instance
    """
    loader = get_config_loader()
    return loader.reload()
