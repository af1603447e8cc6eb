"""Render activation events to the terminal (Rich) or as JSON."""
from __future__ import annotations

import json
from collections import Counter
from typing import Optional

from rich.console import Console
from rich.markup import escape

from .models import (
    AccountSkipped,
    AccountStarted,
    Event,
    ListingFailed,
    RoleActivated,
    RoleFailed,
    RoleSkippedActive,
)


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

class TextFormatter:
    """Renders events as colored lines, one per subscription and per role."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(highlight=False)
        self.counts: Counter = Counter()

    def render(self, event: Event) -> None:
        c = self.console
        self.counts[type(event).__name__] += 1

        if isinstance(event, AccountStarted):
            c.print(f"[bold green]Current Subscription:[/bold green] {escape(event.display_name)}")
        elif isinstance(event, AccountSkipped):
            c.print(
                f"[dim]Skipping subscription {escape(event.subscription_id)}: "
                f"{escape(event.reason)}[/dim]"
            )
        elif isinstance(event, ListingFailed):
            c.print(
                f"  [yellow]! Could not {escape(_describe_operation(event.operation))} "
                f"for {escape(event.target)}: {escape(event.detail)}[/yellow]"
            )
        elif isinstance(event, RoleActivated):
            c.print(
                f"  [green]✓ Activated '{escape(event.role_name)}' "
                f"({_format_hours(event.duration_hours)}h)[/green]"
            )
        elif isinstance(event, RoleSkippedActive):
            c.print(f"  [yellow]✓ Skipping '{escape(event.role_name)}' - Already active[/yellow]")
        elif isinstance(event, RoleFailed):
            c.print(
                f"  [red]✗ Failed to activate '{escape(event.role_name)}': "
                f"{escape(event.error_detail)}[/red]"
            )

    def finish(self) -> None:
        n = self.counts
        if not n:
            return
        self.console.print()
        self.console.print(
            f"[bold]Activated:[/bold] {n['RoleActivated']}  "
            f"[bold]Already active:[/bold] {n['RoleSkippedActive']}  "
            f"[bold]Failed:[/bold] {n['RoleFailed']}  "
            f"[bold]Subscriptions skipped:[/bold] {n['AccountSkipped']}  "
            f"[bold]Listings failed:[/bold] {n['ListingFailed']}"
        )


class JsonFormatter:
    """Collects events and prints them as one JSON document on finish()."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent
        self.events: list[dict] = []

    def render(self, event: Event) -> None:
        self.events.append(event_to_dict(event))

    def finish(self) -> None:
        print(json.dumps({"events": self.events}, indent=self.indent, default=str))


def get_formatter(
    output: str, console: Optional[Console] = None
) -> TextFormatter | JsonFormatter:
    """Factory: ``'text'`` → TextFormatter, ``'json'`` → JsonFormatter."""
    if output == "json":
        return JsonFormatter()
    return TextFormatter(console=console)


def event_to_dict(event: Event) -> dict:
    if isinstance(event, AccountStarted):
        return {
            "event": "account_started",
            "subscription_id": event.subscription_id,
            "display_name": event.display_name,
        }
    if isinstance(event, AccountSkipped):
        return {
            "event": "account_skipped",
            "subscription_id": event.subscription_id,
            "reason": event.reason,
        }
    if isinstance(event, ListingFailed):
        return {
            "event": "listing_failed",
            "subscription_id": event.subscription_id,
            "operation": event.operation,
            "target": event.target,
            "error": event.detail,
        }
    if isinstance(event, RoleActivated):
        return {
            "event": "role_activated",
            "subscription_id": event.subscription_id,
            "role_name": event.role_name,
            "scope": event.scope,
            "duration_hours": event.duration_hours,
        }
    if isinstance(event, RoleSkippedActive):
        return {
            "event": "role_skipped_active",
            "subscription_id": event.subscription_id,
            "role_name": event.role_name,
            "scope": event.scope,
            "reason": event.reason.value,
        }
    if isinstance(event, RoleFailed):
        return {
            "event": "role_failed",
            "subscription_id": event.subscription_id,
            "role_name": event.role_name,
            "scope": event.scope,
            "error": event.error_detail,
        }
    raise TypeError(f"Unknown event type: {type(event).__name__}")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _describe_operation(operation: str) -> str:
    # "list_policy_assignments" -> "list policy assignments"
    return operation.replace("_", " ")


def _format_hours(hours: float) -> str:
    # 8.0 -> "8", 1.5 -> "1.5"
    return f"{hours:g}"
