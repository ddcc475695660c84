"""Command-line interface for the feedback resolver.

Provides commands for configuration validation, analysis runs, connection
checks and dedup store maintenance.

Usage:
    feedback-resolver validate-config
    feedback-resolver analyze --file feedback.txt
    feedback-resolver analyze --replies --policy threshold --threshold 0.9
    feedback-resolver test-connection
    feedback-resolver reset-processed --yes
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.table import Table

from resolver.config import validate_config_file
from resolver.core.logging import configure_logging
from resolver.engine.events import EventKind

if TYPE_CHECKING:
    from resolver.config_schema import AppConfig
    from resolver.engine.events import PipelineEvent
    from resolver.engine.pipeline import RunResult
    from resolver.llm.generator import AnthropicGenerator
    from resolver.mail.transport import GraphMailTransport

console = Console()
err_console = Console(stderr=True)

config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)


@dataclass(frozen=True, slots=True)
class CLIDeps:
    """Collaborators built from configuration by _init_cli_deps()."""

    config: AppConfig
    generator: AnthropicGenerator | None
    transport: GraphMailTransport | None


def _load_cli_config(config_path: Path | None, overrides: dict[str, Any] | None = None) -> AppConfig:
    """Load config, apply CLI overrides, and configure logging.

    Prints an actionable message and calls sys.exit(1) on failure.
    """
    from resolver.config import apply_overrides, load_config
    from resolver.core.errors import ConfigLoadError, ConfigValidationError

    try:
        config = load_config(config_path)
        if overrides:
            config = apply_overrides(config, overrides)
    except (ConfigLoadError, ConfigValidationError) as e:
        err_console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Copy config/config.yaml.example to config/config.yaml and edit it, "
            "or run [cyan]feedback-resolver validate-config[/cyan] for details."
        )
        sys.exit(1)

    debug = click.get_current_context().find_root().params.get("debug", False)
    configure_logging(
        log_level="DEBUG" if debug else config.logging.level,
        json_output=config.logging.json_output,
    )
    return config


def _init_cli_deps(
    config: AppConfig,
    needs_generation: bool = True,
    needs_mail: bool = False,
) -> CLIDeps:
    """Check credentials and build the generator and mail transport.

    Prints actionable error messages and calls sys.exit(1) on failure.
    """
    from resolver.config import check_runtime_requirements, resolve_api_key
    from resolver.core.errors import AuthenticationError, ConfigValidationError
    from resolver.llm.generator import AnthropicGenerator
    from resolver.mail.auth import GraphAuth
    from resolver.mail.client import GraphClient
    from resolver.mail.transport import GraphMailTransport

    try:
        check_runtime_requirements(config, needs_generation=needs_generation)
    except ConfigValidationError as e:
        err_console.print(f"[red]Config error:[/red] {e}")
        sys.exit(1)

    generator = None
    if needs_generation:
        generator = AnthropicGenerator.from_api_key(
            resolve_api_key(config) or "", default_model=config.ai.model
        )

    transport = None
    if needs_mail:
        try:
            auth = GraphAuth(
                client_id=config.mail.client_id,
                tenant_id=config.mail.tenant_id,
                scopes=config.mail.scopes,
                token_cache_path=config.mail.token_cache_path,
                console=err_console,
            )
        except AuthenticationError as e:
            err_console.print(
                f"[red]Authentication error:[/red] {e}\n\n"
                "Check your Azure AD app registration and try again."
            )
            sys.exit(1)
        transport = GraphMailTransport(GraphClient(auth), folder=config.mail.folder)

    return CLIDeps(config=config, generator=generator, transport=transport)


def _run_async(coro: Any) -> None:
    """Run a coroutine with the CLI's interrupt and error conventions."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        err_console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Feedback Resolver - AI triage, categorization and replies for feedback."""
    log_level = "DEBUG" if debug else "WARNING"
    configure_logging(log_level=log_level, json_output=False)


# ---------------------------------------------------------------------------
# validate-config
# ---------------------------------------------------------------------------


@cli.command("validate-config")
@config_option
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that the YAML parses and passes schema validation. Unknown keys
    and out-of-range values are reported field by field.
    """
    console.print(f"Validating config: [cyan]{config_path or 'config/config.yaml'}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


@cli.command("analyze")
@config_option
@click.option(
    "--file",
    "-f",
    "files",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Feedback file to analyze (repeatable)",
)
@click.option("--text", "-t", default=None, help="Feedback text to analyze")
@click.option(
    "--replies/--no-replies",
    default=None,
    help="Offer suggested replies (default: replies.enabled)",
)
@click.option("--dry-run", "is_dry_run", is_flag=True, help="Preview replies without sending")
@click.option(
    "--policy",
    type=click.Choice(["interactive", "auto", "threshold"]),
    default=None,
    help="Reply approval policy",
)
@click.option("--threshold", type=float, default=None, help="Confidence threshold (0-1)")
@click.option("--max-replies", type=int, default=None, help="Cap on approved replies")
@click.option("--chunk-size", type=int, default=None, help="Items per consolidation call")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def analyze(
    config_path: Path | None,
    files: tuple[Path, ...],
    text: str | None,
    replies: bool | None,
    is_dry_run: bool,
    policy: str | None,
    threshold: float | None,
    max_replies: int | None,
    chunk_size: int | None,
    as_json: bool,
) -> None:
    """Analyze feedback and optionally send approved replies.

    Reads --file/--text when given, otherwise the configured source. Items
    processed in earlier runs are skipped.
    """
    overrides: dict[str, Any] = {
        "replies": {
            "enabled": replies,
            "dry_run": True if is_dry_run else None,
            "policy": policy,
            "confidence_threshold": threshold,
            "max_replies_per_run": max_replies,
        },
        "analysis": {"chunk_size": chunk_size},
    }
    if files or text is not None:
        overrides["source"] = {"mode": "file"}

    config = _load_cli_config(config_path, overrides)
    _run_async(_run_analyze(config, list(files), text, as_json))


class _ConsoleProgress:
    """Prints pipeline progress lines to a console."""

    def __init__(self, out: Console) -> None:
        self._out = out

    def __call__(self, event: PipelineEvent) -> None:
        detail = event.detail
        if event.kind == EventKind.STARTED:
            self._out.print(f"[bold]Run {detail['run_id'][:8]}[/bold] (source: {detail['source']})")
        elif event.kind == EventKind.ERROR:
            self._out.print(f"[red]Run failed:[/red] {detail['error']}")
        elif event.stage == "items_loaded":
            self._out.print(
                f"  Loaded [cyan]{detail['loaded']}[/cyan] items"
                f"  |  already processed: {detail['skipped']}"
                f"  |  deferred: {detail['deferred']}"
                f"  |  analyzing: [cyan]{detail['items']}[/cyan]"
            )
        elif event.stage == "item_triaged":
            mark = "[red]![/red]" if detail["failed"] else (
                "[green]+[/green]" if detail["is_relevant"] else "[dim]-[/dim]"
            )
            self._out.print(f"  {mark} Triaged {detail['position']}/{detail['total']}")
        elif event.stage == "chunk_consolidated":
            status = "ok" if detail["succeeded"] else "[yellow]fallback[/yellow]"
            self._out.print(
                f"  Consolidated batch {detail['chunk']}/{detail['total_chunks']} ({status})"
            )


async def _run_analyze(
    config: AppConfig,
    files: list[Path],
    text: str | None,
    as_json: bool,
) -> None:
    """Async implementation of analyze command."""
    from resolver.config import resolve_slack_webhook
    from resolver.engine.pipeline import FeedbackPipeline
    from resolver.notify.channels import ConsoleNotifier, FileNotifier, SlackNotifier
    from resolver.replies.approval import ConsoleApprovalPrompter
    from resolver.store.processed import DedupStore, create_backend

    from_mailbox = config.source.mode == "mail" and not files and text is None
    sends_replies = config.replies.enabled and not config.replies.dry_run
    deps = _init_cli_deps(config, needs_mail=from_mailbox or sends_replies)

    out = err_console if as_json else console
    notify = config.notifications
    notifiers: list[Any] = []
    if notify.console and not as_json:
        notifiers.append(ConsoleNotifier(console))
    if notify.slack.enabled:
        notifiers.append(
            SlackNotifier(
                webhook_url=resolve_slack_webhook(config) or "",
                channel=notify.slack.channel,
                username=notify.slack.username,
                icon_emoji=notify.slack.icon_emoji,
                timeout_seconds=notify.slack.timeout_seconds,
            )
        )
    if notify.file.enabled:
        notifiers.append(FileNotifier(notify.file.output_dir))

    pipeline = FeedbackPipeline(
        config=config,
        generator=deps.generator,
        notifiers=notifiers,
        dedup=DedupStore(create_backend(config.dedup), max_ids=config.dedup.max_ids),
        fetcher=deps.transport,
        sender=deps.transport,
        prompter=ConsoleApprovalPrompter(out),
    )

    result = await pipeline.run(
        files=files or None,
        text=text,
        listener=None if as_json else _ConsoleProgress(out),
    )

    if as_json:
        click.echo(json.dumps(_result_payload(result), indent=2))
    else:
        _print_summary(result)


def _result_payload(result: RunResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "run_id": result.run_id,
        "items": {
            "loaded": result.items_loaded,
            "skipped": result.items_skipped,
            "deferred": result.items_deferred,
            "processed": result.items_processed,
        },
        "report": result.report.to_dict() if result.report else None,
        "deliveries": [
            {"channel": d.channel, "success": d.success, "error": d.error, "location": d.location}
            for d in result.deliveries
        ],
    }
    if result.approval is not None:
        payload["replies"] = {
            "approved": len(result.approval.approved),
            "skipped": len(result.approval.skipped),
            "pending": len(result.approval.pending),
            "quit": result.approval.quit,
            "dry_run": result.approval.dry_run,
            "preview": [
                {"item_id": c.source_item.id, "to": c.source_item.sender, "reply": c.suggested_reply}
                for c in result.approval.preview
            ],
        }
    if result.dispatch is not None:
        payload["dispatch"] = {
            "attempted": result.dispatch.attempted,
            "sent": result.dispatch.sent,
            "failed": result.dispatch.failed,
            "failures": [
                {"item_id": f.item_id, "to": f.to, "error": f.error}
                for f in result.dispatch.failures
            ],
        }
    return payload


def _print_summary(result: RunResult) -> None:
    console.print(f"\n[bold]Run Summary[/bold] (run {result.run_id[:8]}...)")
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Duration", f"{result.duration_ms}ms")
    table.add_row("Loaded", str(result.items_loaded))
    table.add_row("Already processed", str(result.items_skipped))
    table.add_row("Deferred", str(result.items_deferred))
    table.add_row("Analyzed", str(result.items_processed))
    if result.report:
        summary = result.report.summary
        table.add_row("Relevant", str(summary.relevant_items))
        table.add_row("General", str(summary.general_items))
        if result.report.metadata.failed_chunks:
            table.add_row(
                "Failed batches",
                f"[yellow]{result.report.metadata.failed_chunks}[/yellow]",
            )
    console.print(table)

    for delivery in result.deliveries:
        if delivery.success:
            where = f" -> {delivery.location}" if delivery.location else ""
            console.print(f"  [green]✓[/green] {delivery.channel}{where}")
        else:
            console.print(f"  [red]✗[/red] {delivery.channel}: {delivery.error}")

    approval = result.approval
    if approval is not None:
        if approval.dry_run:
            console.print(
                f"\n[cyan]Dry run:[/cyan] {len(approval.preview)} of "
                f"{len(approval.candidates)} suggested replies would be approved"
            )
            for candidate in approval.preview:
                console.print(f"  - {candidate.source_item.sender}: {candidate.source_item.subject}")
        else:
            console.print(
                f"\nReplies: approved [green]{len(approval.approved)}[/green]"
                f"  |  skipped {len(approval.skipped)}"
                f"  |  pending {len(approval.pending)}"
                + ("  |  [yellow]session quit[/yellow]" if approval.quit else "")
            )

    if result.dispatch is not None:
        console.print(
            f"Sent [green]{result.dispatch.sent}[/green]/{result.dispatch.attempted}"
            f"  |  failed [red]{result.dispatch.failed}[/red]"
        )
        for failure in result.dispatch.failures:
            console.print(f"  [red]✗[/red] {failure.to}: {failure.error}")


# ---------------------------------------------------------------------------
# test-connection
# ---------------------------------------------------------------------------


@cli.command("test-connection")
@config_option
def test_connection(config_path: Path | None) -> None:
    """Check access to the generation service and, in mail mode, Outlook."""
    config = _load_cli_config(config_path)
    _run_async(_run_test_connection(config))


async def _run_test_connection(config: AppConfig) -> None:
    """Async implementation of test-connection command."""
    from resolver.interfaces import GenerationOptions

    deps = _init_cli_deps(config, needs_mail=config.source.mode == "mail")
    failures = 0

    ok, message = await deps.generator.check_connection(
        GenerationOptions(
            provider=config.ai.provider,
            model=config.ai.model,
            timeout_seconds=config.ai.timeout_seconds,
        )
    )
    failures += 0 if ok else 1
    console.print(f"{'[green]✓[/green]' if ok else '[red]✗[/red]'} AI ({config.ai.provider}): {message}")

    if deps.transport is not None:
        ok, message = await deps.transport.check_connection()
        failures += 0 if ok else 1
        console.print(f"{'[green]✓[/green]' if ok else '[red]✗[/red]'} Outlook: {message}")

    if failures:
        sys.exit(1)


# ---------------------------------------------------------------------------
# reset-processed
# ---------------------------------------------------------------------------


@cli.command("reset-processed")
@config_option
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip confirmation prompt")
def reset_processed(config_path: Path | None, assume_yes: bool) -> None:
    """Forget every processed item id so the next run reprocesses everything."""
    config = _load_cli_config(config_path)
    if not assume_yes and not click.confirm(
        f"Clear processed ids in {config.dedup.path} ({config.dedup.backend})?",
        default=False,
    ):
        console.print("[yellow]Cancelled.[/yellow]")
        return
    _run_async(_run_reset_processed(config))


async def _run_reset_processed(config: AppConfig) -> None:
    """Async implementation of reset-processed command."""
    from resolver.store.processed import create_backend

    await create_backend(config.dedup).clear()
    console.print(f"[green]✓[/green] Cleared processed ids in {config.dedup.path}")


def main() -> None:
    """Entry point for the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
