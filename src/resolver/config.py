"""Configuration loading, overrides and runtime checks.

Configuration is an explicit value: it is loaded once from YAML (or built from
defaults), optionally overridden from the command line, checked for runtime
requirements, and then passed to whoever needs it. There is no module-level
config singleton.

Usage:
    from resolver.config import apply_overrides, check_runtime_requirements, load_config

    config = load_config(Path("config/config.yaml"))
    config = apply_overrides(config, {"replies": {"dry_run": True}})
    check_runtime_requirements(config)
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from resolver.config_schema import AppConfig
from resolver.core.errors import ConfigLoadError, ConfigValidationError
from resolver.core.logging import get_logger

logger = get_logger(__name__)

# Default config path - can be overridden via environment variable
DEFAULT_CONFIG_PATH = Path("config/config.yaml")

ANTHROPIC_KEY_ENV = "ANTHROPIC_API_KEY"
SLACK_WEBHOOK_ENV = "SLACK_WEBHOOK_URL"


def get_config_path() -> Path:
    """Get the config file path from environment or default."""
    env_path = os.environ.get("RESOLVER_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into actionable messages.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message with specific field errors
    """
    messages = []
    for err in error.errors():
        # Build field path (e.g., "replies.policy")
        field_path = ".".join(str(loc) for loc in err["loc"])
        msg = err["msg"]
        err_type = err["type"]

        if err_type == "missing":
            messages.append(f"  - Missing required field '{field_path}'")
        elif err_type == "extra_forbidden":
            messages.append(f"  - Unknown setting '{field_path}' (check spelling and nesting)")
        elif err_type == "string_type":
            messages.append(f"  - Field '{field_path}' must be a string")
        elif err_type == "int_type":
            messages.append(f"  - Field '{field_path}' must be an integer")
        else:
            messages.append(f"  - Field '{field_path}': {msg}")

    return "\n".join(messages)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse YAML file.

    Raises:
        ConfigLoadError: If file not found or YAML parse error
    """
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it by copying config/config.yaml.example to {path}"
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e
    except OSError as e:
        raise ConfigLoadError(f"Failed to read configuration file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Configuration file must be a YAML mapping, got {type(data).__name__}"
        )
    return data


def build_config(data: Mapping[str, Any] | None = None, source: str = "<defaults>") -> AppConfig:
    """Apply schema defaults, then the given values, and validate.

    Args:
        data: Partial configuration mapping (missing keys take defaults)
        source: Description of where the data came from, for error messages

    Raises:
        ConfigValidationError: If a value is invalid or a key is unknown
    """
    try:
        return AppConfig(**dict(data or {}))
    except ValidationError as e:
        error_details = _format_validation_errors(e)
        raise ConfigValidationError(
            f"Configuration validation failed for {source}:\n{error_details}"
        ) from e


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate configuration from a YAML file.

    When no path is given and the default file does not exist, the built-in
    defaults are used. An explicitly requested file that does not exist is
    an error.

    Args:
        path: Optional path to config file. If not provided, uses
              RESOLVER_CONFIG_PATH env var or the default location.

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    explicit = path is not None or "RESOLVER_CONFIG_PATH" in os.environ
    config_path = path or get_config_path()

    if not explicit and not config_path.exists():
        logger.debug("config_file_absent_using_defaults", path=str(config_path))
        return build_config()

    logger.debug("loading_configuration", path=str(config_path))
    data = _load_yaml(config_path)
    config = build_config(data, source=str(config_path))

    logger.info(
        "configuration_loaded",
        path=str(config_path),
        schema_version=config.schema_version,
        source_mode=config.source.mode,
        replies_enabled=config.replies.enabled,
    )
    return config


def _deep_merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_overrides(config: AppConfig, overrides: Mapping[str, Any]) -> AppConfig:
    """Return a new config with nested overrides applied and re-validated.

    None values in overrides mean "not given" and leave the setting alone.

    Example:
        apply_overrides(config, {"replies": {"policy": "threshold", "max_replies_per_run": 5}})

    Raises:
        ConfigValidationError: If an override is invalid or names an unknown key
    """
    merged = _deep_merge(config.model_dump(), overrides)
    return build_config(merged, source="command-line overrides")


def resolve_api_key(config: AppConfig, env: Mapping[str, str] | None = None) -> str | None:
    """Return the generation API key from config or environment."""
    env = os.environ if env is None else env
    return config.ai.api_key or env.get(ANTHROPIC_KEY_ENV) or None


def resolve_slack_webhook(config: AppConfig, env: Mapping[str, str] | None = None) -> str | None:
    """Return the Slack webhook URL from config or environment."""
    env = os.environ if env is None else env
    return config.notifications.slack.webhook_url or env.get(SLACK_WEBHOOK_ENV) or None


def check_runtime_requirements(
    config: AppConfig,
    env: Mapping[str, str] | None = None,
    needs_generation: bool = True,
) -> None:
    """Verify credentials and mode combinations before any work starts.

    Collects every problem and raises once, so the operator can fix all of
    them in one pass.

    Args:
        config: Validated configuration
        env: Environment mapping (defaults to os.environ)
        needs_generation: Whether this command will call the generation service

    Raises:
        ConfigValidationError: Listing each missing or inconsistent setting
    """
    problems: list[str] = []

    if needs_generation and not resolve_api_key(config, env):
        problems.append(
            f"  - Missing API key: set {ANTHROPIC_KEY_ENV} in the environment or .env file"
        )

    if config.source.mode == "mail" and not config.mail.client_id.strip():
        problems.append(
            "  - Field 'mail.client_id' is required when source.mode is 'mail' "
            "(Azure AD application client ID)"
        )

    if config.notifications.slack.enabled and not resolve_slack_webhook(config, env):
        problems.append(
            "  - Slack notifications are enabled but no webhook is configured: "
            f"set notifications.slack.webhook_url or {SLACK_WEBHOOK_ENV}"
        )

    if (
        config.replies.enabled
        and not config.replies.dry_run
        and config.source.mode != "mail"
    ):
        problems.append(
            "  - Replies can only be sent for mail input: set source.mode to 'mail' "
            "or enable replies.dry_run"
        )

    if problems:
        raise ConfigValidationError(
            "Configuration is not usable for this run:\n" + "\n".join(problems)
        )


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Validate a config file without running anything.

    Useful for CLI validation commands and testing.

    Returns:
        Tuple of (is_valid, message)
    """
    config_path = path or get_config_path()

    try:
        config = load_config(config_path)
        notifiers = [
            name
            for name, enabled in (
                ("console", config.notifications.console),
                ("slack", config.notifications.slack.enabled),
                ("file", config.notifications.file.enabled),
            )
            if enabled
        ]
        return (
            True,
            f"Configuration valid (schema version {config.schema_version})\n"
            f"  - source: {config.source.mode} (max {config.source.max_items_per_run} items)\n"
            f"  - model: {config.ai.model}\n"
            f"  - chunk size: {config.analysis.chunk_size}\n"
            f"  - replies: {'on' if config.replies.enabled else 'off'} "
            f"({config.replies.policy})\n"
            f"  - notifiers: {', '.join(notifiers) or 'none'}",
        )
    except ConfigLoadError as e:
        return (False, f"Load error: {e}")
    except ConfigValidationError as e:
        return (False, f"Validation error: {e}")
