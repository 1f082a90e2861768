from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import click
import schedule
from rich.console import Console
from rich.table import Table

from models.notification import UpdateLabelsOptions
from services.auth_service import AuthService
from services.email_notification import EmailNotification
from services.gmail_service import GmailService
from services.mail_client import MailClient
from services.statistics_service import StatisticsService
from utils.config import AppConfig, NotificationConfig, load_config
from utils.logger import configure_logging


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    config: AppConfig
    notification: NotificationConfig
    gmail: MailClient
    stats: StatisticsService
    console: Console

    def new_notification(self) -> EmailNotification:
        return EmailNotification(self.notification.to_query(), self.gmail)


@dataclass(slots=True)
class ProcessOutcome:
    received: bool
    already_processed: bool
    message_ids: tuple[str, ...] = ()
    trashed: bool = False
    dry_run: bool = False


def build_context(env_file: str, notification_name: str | None) -> AppContext:
    config = load_config(env_file)
    configure_logging(config.log_dir, config.log_level)
    notification = config.get_notification(notification_name)

    auth_service = AuthService(config.mailbox)
    gmail_service = GmailService(config.mailbox, auth_service)
    stats = StatisticsService(config.stats_file)

    return AppContext(
        config=config,
        notification=notification,
        gmail=gmail_service,
        stats=stats,
        console=Console(),
    )


@click.group()
@click.option("--env-file", default=".env", show_default=True, help="Path to the .env file")
@click.option("--notification", help="Notification name defined in notifications.json")
@click.pass_context
def cli(ctx: click.Context, env_file: str, notification: Optional[str]) -> None:
    """Watch for notification emails and process each one exactly once."""

    try:
        ctx.obj = build_context(env_file, notification)
    except KeyError as exc:  # unknown or missing notification
        raise click.BadParameter(str(exc), param_hint="--notification") from exc


@cli.command("label-id")
@click.pass_obj
def label_id(app: AppContext) -> None:
    """Print the processed label id, creating the label if needed."""

    resolved = asyncio.run(app.new_notification().get_processed_label_id())
    app.console.print(f"Label {app.notification.processed_label_name} is ready (id: {resolved}).")


@cli.command("status")
@click.pass_obj
def status(app: AppContext) -> None:
    """Show whether the notification arrived and whether it was processed."""

    table = asyncio.run(_build_status_table(app))
    app.console.print(table)


@cli.command("process")
@click.option("--mark-read/--keep-unread", default=True, help="Remove the UNREAD label")
@click.option("--trash/--keep", "trash_after", default=False, help="Move the notification to trash afterwards")
@click.option("--dry-run/--apply", default=False, help="Preview actions without modifying Gmail")
@click.pass_obj
def process(app: AppContext, mark_read: bool, trash_after: bool, dry_run: bool) -> None:
    """Apply the processed label (and optionally trash) to a received notification."""

    outcome = asyncio.run(_perform_process(app, mark_read=mark_read, trash_after=trash_after, dry_run=dry_run))
    app.console.print(_describe_outcome(outcome))


@cli.command("send")
@click.option("--to", "recipient", required=True, help="Recipient address")
@click.option("--subject", required=True, help="Subject line")
@click.option("--body", default="This is some content", show_default=True, help="Plain-text body")
@click.option("--sender", default="me", show_default=True, help="From header")
@click.pass_obj
def send(app: AppContext, recipient: str, subject: str, body: str, sender: str) -> None:
    """Send a test notification email."""

    response = app.gmail.send_message(sender, recipient, subject, body)
    app.console.print(f"Sent message {response.get('id')} to {recipient}.")


@cli.command("delete-label")
@click.confirmation_option(prompt="Delete the processed label from the mailbox?")
@click.pass_obj
def delete_label(app: AppContext) -> None:
    """Delete the processed label."""

    name = app.notification.processed_label_name
    resolved = app.gmail.resolve_label_id(name, create_if_not_exists=False)
    if not resolved:
        app.console.print(f"[yellow]Label {name} does not exist.[/yellow]")
        return
    app.gmail.delete_label(resolved)
    app.console.print(f"Deleted label {name} ({resolved}).")


@cli.command("stats")
@click.pass_obj
def stats(app: AppContext) -> None:
    """Display local run statistics."""

    notifications = app.stats.snapshot().get("notifications", {})
    if not notifications:
        app.console.print("No stats recorded yet.")
        return

    table = Table(title="Notification stats")
    table.add_column("Notification")
    table.add_column("Checks")
    table.add_column("Received")
    table.add_column("Already processed")
    table.add_column("Processed")
    table.add_column("Trashed")
    for name, data in notifications.items():
        table.add_row(
            name,
            str(data.get("checks", 0)),
            str(data.get("received", 0)),
            str(data.get("already_processed", 0)),
            str(data.get("processed", 0)),
            str(data.get("trashed", 0)),
        )
    app.console.print(table)


@cli.command("watch")
@click.option("--interval", type=int, default=15, show_default=True, help="Interval in minutes")
@click.option("--mark-read/--keep-unread", default=True, help="Remove the UNREAD label")
@click.option("--trash/--keep", "trash_after", default=False, help="Move the notification to trash afterwards")
@click.pass_obj
def watch(app: AppContext, interval: int, mark_read: bool, trash_after: bool) -> None:
    """Check for the notification on an interval using the schedule library."""

    def job() -> None:
        outcome = asyncio.run(_perform_process(app, mark_read=mark_read, trash_after=trash_after))
        app.console.print(f"[scheduler] {_describe_outcome(outcome)}")

    schedule.every(interval).minutes.do(job)

    app.console.print(
        f"Watching '{app.notification.name}' every {interval} minute(s). Press Ctrl+C to stop."
    )
    try:
        while True:
            schedule.run_pending()
            time.sleep(1)
    except KeyboardInterrupt:
        app.console.print("Watcher stopped.")


def main() -> None:
    cli(standalone_mode=True)


async def _perform_process(
    app: AppContext, mark_read: bool = True, trash_after: bool = False, dry_run: bool = False
) -> ProcessOutcome:
    # A fresh instance per run: a search that found nothing is final for its instance.
    notification = app.new_notification()
    received = await notification.has_been_received()
    processed = await notification.all_have_been_processed()
    app.stats.record_check(app.notification.name, received, processed)
    if not received or processed:
        return ProcessOutcome(received=received, already_processed=processed)

    message_ids = notification.match.message_ids
    if dry_run:
        LOGGER.info("Dry-run: would process %s", list(message_ids))
        return ProcessOutcome(
            received=True, already_processed=False, message_ids=message_ids, trashed=trash_after, dry_run=True
        )

    await notification.update_labels(UpdateLabelsOptions(apply_processed_label=True, mark_as_read=mark_read))
    if trash_after:
        await notification.trash()
    app.stats.record_processed(app.notification.name, len(message_ids), trash_after)
    return ProcessOutcome(received=True, already_processed=False, message_ids=message_ids, trashed=trash_after)


async def _build_status_table(app: AppContext) -> Table:
    notification = app.new_notification()
    received = await notification.has_been_received()
    processed = await notification.all_have_been_processed()

    table = Table(title=f"Notification {app.notification.name}")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    table.add_row("Search criteria", app.notification.search_criteria)
    table.add_row("Processed label", app.notification.processed_label_name)
    table.add_row("Received", "yes" if received else "no")
    table.add_row("Processed", "yes" if processed else "no")
    if received:
        message = await notification.get_message()
        table.add_row("Matches", str(len(notification.match.message_ids)))
        table.add_row("Message id", message.id)
        table.add_row("Subject", message.subject or "-")
        table.add_row("Snippet", message.snippet or "-")
    return table


def _describe_outcome(outcome: ProcessOutcome) -> str:
    if not outcome.received:
        return "[bold green]Notification not received yet.[/bold green]"
    if outcome.already_processed:
        return "[dim]Notification already processed.[/dim]"
    prefix = "[bold blue]Dry-run[/bold blue] would process" if outcome.dry_run else "[bold blue]Processed[/bold blue]"
    suffix = " and trashed" if outcome.trashed else ""
    return f"{prefix} {len(outcome.message_ids)} message(s){suffix}: {', '.join(outcome.message_ids)}"


if __name__ == "__main__":
    main()
