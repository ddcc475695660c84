"""Pydantic configuration schema for the feedback resolver.

This module defines the configuration schema that mirrors config.yaml structure.
All configuration is validated against these models on startup. Every section
rejects unknown keys so that a misspelled setting fails loudly instead of being
silently ignored.

Usage:
    from resolver.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class StrictModel(BaseModel):
    """Base model that rejects keys not declared on the schema."""

    model_config = ConfigDict(extra="forbid")


def _reject_traversal(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} cannot be empty")
    if ".." in value:
        raise ValueError(f"{label} cannot contain '..' (path traversal)")
    return value


class SourceConfig(StrictModel):
    """Where feedback items come from."""

    mode: Literal["mail", "file"] = Field(
        default="file",
        description="'mail' fetches unread Outlook messages, 'file' reads text files",
    )
    max_items_per_run: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Hard cap on items analyzed per run (bounds token usage)",
    )


class AIConfig(StrictModel):
    """Text-generation provider configuration."""

    provider: Literal["anthropic"] = Field(
        default="anthropic",
        description="Text-generation provider",
    )
    model: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model used for triage and consolidation",
    )
    api_key: str | None = Field(
        default=None,
        description="API key (prefer the ANTHROPIC_API_KEY environment variable)",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Timeout budget for each generation call",
    )
    max_tokens: int = Field(
        default=4096,
        ge=256,
        le=32000,
        description="Maximum tokens requested per generation call",
    )


class MailConfig(StrictModel):
    """Outlook mailbox access via Microsoft Graph."""

    client_id: str = Field(default="", description="Azure AD Application (client) ID")
    tenant_id: str = Field(
        default="common",
        description="Azure AD Directory (tenant) ID or 'common' for personal accounts",
    )
    scopes: list[str] = Field(
        default=["Mail.ReadWrite", "Mail.Send", "User.Read"],
        description="Microsoft Graph API permission scopes",
    )
    token_cache_path: str = Field(
        default="data/token_cache.json",
        description="Path to MSAL token cache file",
    )
    folder: str = Field(default="inbox", description="Mail folder to read from")
    lookback_days: int = Field(
        default=10,
        ge=1,
        le=365,
        description="Only consider messages received within this many days",
    )
    target_address: str | None = Field(
        default=None,
        description="Only consider messages sent to this address (optional)",
    )
    unread_only: bool = Field(default=True, description="Only fetch unread messages")

    @field_validator("token_cache_path")
    @classmethod
    def validate_token_cache_path(cls, v: str) -> str:
        """Ensure token cache path doesn't contain path traversal."""
        return _reject_traversal(v, "Token cache path")


class FileSourceConfig(StrictModel):
    """Text file input configuration."""

    paths: list[str] = Field(
        default_factory=list,
        description="Default files to read when none are passed on the command line",
    )
    encoding: str = Field(default="utf-8", description="Text encoding of input files")


class AnalysisConfig(StrictModel):
    """Consolidation batching configuration."""

    chunk_size: int = Field(
        default=15,
        ge=1,
        le=100,
        description="Triage results per consolidation call",
    )


class RepliesConfig(StrictModel):
    """Reply generation, approval and dispatch."""

    enabled: bool = Field(default=False, description="Offer suggested replies after analysis")
    policy: Literal["interactive", "auto", "threshold"] = Field(
        default="interactive",
        description=(
            "'interactive' asks for every reply, 'auto' approves all without prompting, "
            "'threshold' approves replies at or above confidence_threshold"
        ),
    )
    confidence_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for the threshold policy",
    )
    max_replies_per_run: int = Field(
        default=50,
        ge=0,
        le=500,
        description="Maximum replies approved in one run",
    )
    send_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=60.0,
        description="Pause between consecutive sends",
    )
    dry_run: bool = Field(
        default=False,
        description="Preview approval decisions without sending anything",
    )


class DedupConfig(StrictModel):
    """Processed-id tracking so items are analyzed only once."""

    enabled: bool = Field(default=True, description="Skip items processed in earlier runs")
    backend: Literal["json", "sqlite"] = Field(
        default="json",
        description="Storage backend for processed ids",
    )
    path: str = Field(
        default="data/processed_items.json",
        description="File holding processed ids",
    )
    max_ids: int = Field(
        default=1000,
        ge=1,
        le=1_000_000,
        description="Most recent ids retained",
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure store path doesn't contain path traversal."""
        return _reject_traversal(v, "Dedup store path")


class SlackConfig(StrictModel):
    """Slack incoming webhook delivery."""

    enabled: bool = Field(default=False, description="Post reports to Slack")
    webhook_url: str | None = Field(
        default=None,
        description="Incoming webhook URL (or SLACK_WEBHOOK_URL)",
    )
    channel: str | None = Field(default=None, description="Override webhook channel")
    username: str = Field(default="FeedbackResolver", description="Posting username")
    icon_emoji: str = Field(default=":email:", description="Posting icon")
    timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="HTTP timeout")

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str | None) -> str | None:
        """Ensure the webhook is an https URL when set."""
        if v is not None and v.strip() and not v.startswith("https://"):
            raise ValueError("Slack webhook URL must start with 'https://'")
        return v


class FileOutputConfig(StrictModel):
    """Report files written to disk."""

    enabled: bool = Field(default=True, description="Write Markdown and JSON reports")
    output_dir: str = Field(default="data/reports", description="Directory for report files")

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v: str) -> str:
        """Ensure output directory doesn't contain path traversal."""
        return _reject_traversal(v, "Report output directory")


class NotificationsConfig(StrictModel):
    """Report delivery channels."""

    console: bool = Field(default=True, description="Print the report to the terminal")
    slack: SlackConfig = Field(default_factory=SlackConfig)
    file: FileOutputConfig = Field(default_factory=FileOutputConfig)


class LoggingConfig(StrictModel):
    """Log output configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    json_output: bool = Field(default=False, description="Emit JSON log lines")


class AppConfig(StrictModel):
    """Root configuration schema for the feedback resolver.

    This model validates the entire config.yaml structure. Missing sections
    take their defaults; unknown keys anywhere are validation errors.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    source: SourceConfig = Field(default_factory=SourceConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    file: FileSourceConfig = Field(default_factory=FileSourceConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    replies: RepliesConfig = Field(default_factory=RepliesConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("schema_version")
    @classmethod
    def validate_schema_version(cls, v: int) -> int:
        """Reject configs written for a newer schema than this build understands."""
        if v > CURRENT_SCHEMA_VERSION:
            raise ValueError(
                f"Config schema_version {v} is newer than supported "
                f"version {CURRENT_SCHEMA_VERSION}. Upgrade feedback-resolver."
            )
        return v
