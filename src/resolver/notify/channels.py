"""Report delivery channels: Slack webhook, report files, and the terminal.

Channels are delivered concurrently. Each channel's failure is caught and
recorded in its DeliveryResult; one failing channel never stops the others
or fails the run.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import requests
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from resolver.core.errors import NotificationError
from resolver.core.fileio import atomic_write_text
from resolver.core.logging import get_logger
from resolver.models import DeliveryResult

if TYPE_CHECKING:
    from resolver.interfaces import ReportNotifier
    from resolver.models import ConsolidatedReport

logger = get_logger(__name__)

SLACK_BULLET_LIMIT = 120


def _display_time(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d at %H:%M UTC")
    except ValueError:
        return timestamp


# ---------------------------------------------------------------------------
# Slack
# ---------------------------------------------------------------------------


def condense_analysis(text: str, bullet_limit: int = SLACK_BULLET_LIMIT) -> str:
    """Reduce report Markdown to category headers and truncated bullets."""
    lines: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("### "):
            lines.append(f"\n*{line[4:].strip()}*")
        elif line.startswith("* ") or line.startswith("- "):
            content = line[1:].strip()
            if len(content) > bullet_limit:
                content = content[: bullet_limit - 3] + "..."
            lines.append(f"• {content}")
    return "\n".join(lines).strip()


def format_slack_message(report: ConsolidatedReport) -> str:
    """Slack mrkdwn text for a report."""
    summary = report.summary
    when = _display_time(report.timestamp)

    if summary.relevant_items == 0:
        lines = [
            "*Feedback Analysis Report*",
            when,
            "",
            "No new relevant feedback found.",
        ]
        if summary.total_items > 0:
            lines.append(
                f"Processed {summary.total_items} item(s), but none contained "
                "business-relevant feedback."
            )
        else:
            lines.append("No new items found to analyze.")
        return "\n".join(lines)

    lines = [
        "*Feedback Analysis Report*",
        when,
        "",
        "*Summary*",
        f"• Total items processed: {summary.total_items}",
        f"• Relevant business communications: {summary.relevant_items}",
        f"• General communications: {summary.general_items}",
    ]
    if summary.categories:
        lines.append(f"• Categories found: {len(summary.categories)}")
    if summary.key_insights:
        lines.extend(["", "*Key Insights*"])
        lines.extend(f"• {insight}" for insight in summary.key_insights)
    condensed = condense_analysis(report.analysis_text)
    if condensed:
        lines.extend(["", "*Feedback Categories*", condensed])
    model = report.metadata.model or report.metadata.provider
    lines.extend(["", f"_Analysis by {model}_"])
    return "\n".join(lines)


class SlackNotifier:
    """Posts reports to a Slack incoming webhook.

    The HTTP call is synchronous (requests) and runs in a worker thread.
    """

    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        channel: str | None = None,
        username: str = "FeedbackResolver",
        icon_emoji: str = ":email:",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("SlackNotifier requires a webhook URL")
        self.webhook_url = webhook_url
        self.channel = channel
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def build_payload(self, report: ConsolidatedReport) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": format_slack_message(report),
            "username": self.username,
            "icon_emoji": self.icon_emoji,
        }
        if self.channel:
            payload["channel"] = self.channel
        return payload

    def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = self.session.post(
                self.webhook_url,
                json=payload,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Slack webhook request failed: {e}", channel=self.name) from e
        if response.status_code != 200:
            raise NotificationError(
                f"Slack webhook returned {response.status_code}: {response.text[:200]}",
                channel=self.name,
            )

    async def deliver(self, report: ConsolidatedReport) -> DeliveryResult:
        await asyncio.to_thread(self._post, self.build_payload(report))
        logger.info("slack_report_sent", channel=self.channel)
        return DeliveryResult(channel=self.name, success=True)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class FileNotifier:
    """Writes each report as Markdown plus a JSON twin under output_dir."""

    name = "file"

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)

    def render_markdown(self, report: ConsolidatedReport) -> str:
        summary = report.summary
        lines = [
            f"# Feedback Analysis Report - {_display_time(report.timestamp)}",
            "",
            "## Summary",
            "",
            f"- Total items: {summary.total_items}",
            f"- Relevant items: {summary.relevant_items}",
            f"- General items: {summary.general_items}",
        ]
        if summary.categories:
            lines.append(f"- Categories: {', '.join(summary.categories)}")
        if summary.key_insights:
            lines.extend(["", "## Key Insights", ""])
            lines.extend(f"- {insight}" for insight in summary.key_insights)
        lines.extend(["", "## Analysis", "", report.analysis_text.strip(), ""])
        lines.append(
            f"_Provider: {report.metadata.provider}, model: {report.metadata.model or 'default'}_"
        )
        return "\n".join(lines) + "\n"

    def _write(self, report: ConsolidatedReport) -> Path:
        stamp = report.timestamp[:19].replace(":", "").replace("-", "")
        base = self.output_dir / f"feedback_report_{stamp}"
        markdown_path = atomic_write_text(base.with_suffix(".md"), self.render_markdown(report))
        atomic_write_text(
            base.with_suffix(".json"),
            json.dumps(report.to_dict(), indent=2, ensure_ascii=False),
        )
        return markdown_path

    async def deliver(self, report: ConsolidatedReport) -> DeliveryResult:
        try:
            path = await asyncio.to_thread(self._write, report)
        except OSError as e:
            raise NotificationError(
                f"Cannot write report to {self.output_dir}: {e}", channel=self.name
            ) from e
        logger.info("report_file_written", path=str(path))
        return DeliveryResult(channel=self.name, success=True, location=str(path))


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------


class ConsoleNotifier:
    """Renders the report to the terminal with rich."""

    name = "console"

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def deliver(self, report: ConsolidatedReport) -> DeliveryResult:
        summary = report.summary
        self.console.print(
            Panel(
                f"Total: [cyan]{summary.total_items}[/cyan]  "
                f"Relevant: [green]{summary.relevant_items}[/green]  "
                f"General: [dim]{summary.general_items}[/dim]",
                title=f"Feedback Analysis Report ({_display_time(report.timestamp)})",
                expand=False,
            )
        )
        self.console.print(Markdown(report.analysis_text))
        if summary.key_insights:
            self.console.print("\n[bold]Key insights[/bold]")
            for insight in summary.key_insights:
                self.console.print(f"  • {insight}")
        return DeliveryResult(channel=self.name, success=True)


async def _deliver_one(notifier: ReportNotifier, report: ConsolidatedReport) -> DeliveryResult:
    try:
        return await notifier.deliver(report)
    except NotificationError as e:
        logger.error("notification_failed", channel=notifier.name, error=str(e))
        return DeliveryResult(channel=notifier.name, success=False, error=str(e))


async def deliver_all(
    notifiers: list[ReportNotifier],
    report: ConsolidatedReport,
) -> list[DeliveryResult]:
    """Deliver a report to every channel concurrently.

    Unexpected exceptions from a channel are recorded as a failed delivery
    for that channel only.

    Returns:
        One DeliveryResult per notifier, in notifier order
    """
    if not notifiers:
        return []
    outcomes = await asyncio.gather(
        *(_deliver_one(n, report) for n in notifiers),
        return_exceptions=True,
    )
    results: list[DeliveryResult] = []
    for notifier, outcome in zip(notifiers, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            logger.error(
                "notification_crashed",
                channel=notifier.name,
                error=repr(outcome),
            )
            outcome = DeliveryResult(channel=notifier.name, success=False, error=str(outcome))
        results.append(outcome)
    return results
