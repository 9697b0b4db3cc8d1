"""
Configuration loader for Pincer.

Loads configuration from a YAML file with environment variable substitution
and deep-merges it over built-in defaults.
"""

import os
import re
from pathlib import Path

import yaml


def load_config(config_path: str = None) -> dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $PINCER_CONFIG or config.yaml.

    Returns:
        Configuration dict with env vars substituted, merged over defaults.
    """
    if config_path is None:
        config_path = os.environ.get("PINCER_CONFIG", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        return _default_config()

    with open(path) as f:
        content = f.read()

    # Substitute environment variables: ${VAR_NAME} or ${VAR_NAME:default}
    content = _substitute_env_vars(content)

    config = yaml.safe_load(content) or {}
    return _merge_with_defaults(config)


def _substitute_env_vars(content: str) -> str:
    """Replace ${VAR} and ${VAR:default} with environment values."""

    def replace(match):
        var_expr = match.group(1)
        if ":" in var_expr:
            var_name, default = var_expr.split(":", 1)
        else:
            var_name, default = var_expr, ""
        return os.environ.get(var_name, default)

    return re.sub(r"\$\{([^}]+)\}", replace, content)


def _default_config() -> dict:
    """Return the built-in configuration."""
    return {
        "verbose": "light",
        "agent": {
            "name": os.environ.get("AGENT_NAME", "Pincer"),
            "model": os.environ.get("PINCER_MODEL", "claude-sonnet-4-20250514"),
            "use_litellm": False,
            "max_tokens": 4096,
            "workers": 10,
        },
        "planner": {
            "max_iterations": 8,
            "max_attempts": 3,
            "retry_delay": 2.0,
        },
        "memory": {
            "path": os.environ.get("PINCER_MEMORY_PATH", ".memory"),
            "short_term_limit": 50,
        },
        "rag": {
            "enabled": False,
            "endpoint": os.environ.get("PINCER_RAG_ENDPOINT", ""),
            "top_k": 4,
        },
        "heartbeat": {
            "enabled": True,
            "interval_minutes": 15,
        },
        "dedup": {
            "ttl_seconds": 3600,
            "max_size": 10000,
        },
        "channels": {
            "console": {"enabled": True},
            "slack": {
                "enabled": bool(os.environ.get("SLACK_BOT_TOKEN")),
                "bot_token": os.environ.get("SLACK_BOT_TOKEN", ""),
                "workspace_id": os.environ.get("SLACK_WORKSPACE_ID", ""),
            },
            "whatsapp": {
                "enabled": bool(os.environ.get("WHATSAPP_ACCESS_TOKEN")),
                "access_token": os.environ.get("WHATSAPP_ACCESS_TOKEN", ""),
                "phone_number_id": os.environ.get("WHATSAPP_PHONE_NUMBER_ID", ""),
                "verify_token": os.environ.get("WHATSAPP_VERIFY_TOKEN", ""),
                "api_version": "v21.0",
            },
        },
        "mcp": {
            "servers": [],
        },
    }


def _merge_with_defaults(config: dict) -> dict:
    """Deep-merge user config over defaults."""

    def merge(base, override):
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = merge(result[key], value)
            else:
                result[key] = value
        return result

    return merge(_default_config(), config)


def get_channel_config(config: dict, channel: str) -> dict:
    """Get configuration for a specific channel, or {} if absent."""
    return config.get("channels", {}).get(channel, {})


def is_channel_enabled(config: dict, channel: str) -> bool:
    """Check if a channel is enabled."""
    return get_channel_config(config, channel).get("enabled", False)
