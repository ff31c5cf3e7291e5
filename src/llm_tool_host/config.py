"""Application configuration repository.

Centralizes access to configuration values loaded from environment variables
or other sources. Provides a clean interface for all application layers.

This module implements the Repository pattern for configuration management,
decoupling business logic from environment variable access.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Application configuration container.

    This dataclass holds all configuration values used throughout the application.
    Values are typically loaded from environment variables during initialization.
    """

    # Model backend
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    model: str = "gpt-4o"

    # MCP settings
    mcp_config_file: str = ".mcpconfig.json"
    mcp_request_timeout_seconds: float = 5.0

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            list[str]: List of warning messages for missing or invalid configuration.
        """
        issues = []

        if not self.openai_api_key and not self.openai_base_url:
            issues.append("OPENAI_API_KEY not set - model requests will fail")

        if not self.model:
            issues.append("LLM_TOOL_HOST_MODEL is empty")

        if self.mcp_request_timeout_seconds <= 0:
            issues.append(f"Invalid MCP_REQUEST_TIMEOUT_SECONDS: {self.mcp_request_timeout_seconds}")

        return issues


# Global configuration instance (set once at startup)
_config: Optional[AppConfig] = None


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    This should be called once during application initialization
    (typically from init_runtime()).

    Returns:
        AppConfig: Configuration instance populated from environment variables.
    """

    def _get_env_float(key: str, default: float) -> float:
        """Safely parse float from environment variable with fallback."""
        val_str = os.getenv(key)
        if val_str is None:
            return default
        try:
            return float(val_str)
        except (ValueError, TypeError):
            logger.warning(f"Invalid value for {key}: '{val_str}'. Using default value: {default}.")
            return default

    config = AppConfig(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        model=os.getenv("LLM_TOOL_HOST_MODEL", "gpt-4o"),
        mcp_config_file=os.getenv("MCP_CONFIG_FILE", ".mcpconfig.json"),
        mcp_request_timeout_seconds=_get_env_float("MCP_REQUEST_TIMEOUT_SECONDS", 5.0),
    )

    # Log validation issues
    issues = config.validate()
    for issue in issues:
        logger.warning(issue)

    return config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance.

    This should only be called once during application initialization.

    Args:
        config: AppConfig instance to use globally.

    Raises:
        RuntimeError: If configuration has already been set.
    """
    global _config
    if _config is not None:
        raise RuntimeError("Configuration already set. Call reset_config() first.")
    _config = config
    logger.debug("Configuration initialized")


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Returns:
        AppConfig: The global configuration instance.

    Raises:
        RuntimeError: If configuration has not been initialized.
                     Call init_runtime() first.
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not initialized. Call init_runtime() at application startup."
        )
    return _config


def reset_config() -> None:
    """Reset configuration state.

    This function is intended for testing purposes only.
    It allows tests to reset the configuration between test cases.
    """
    global _config
    _config = None


def is_config_initialized() -> bool:
    """Check if configuration has been initialized.

    Returns:
        bool: True if configuration is initialized, False otherwise.
    """
    return _config is not None
