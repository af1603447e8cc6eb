"""pimbulk CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.resource import SubscriptionClient
from rich.console import Console
from rich.logging import RichHandler

from .activator import DEFAULT_JUSTIFICATION, activate_roles
from .config import load_default_subscriptions
from .formatters import get_formatter
from .models import AccountSkipped, AccountStarted

MANAGEMENT_SCOPE = "https://management.azure.com/.default"


def _split_values(ctx, param, values: tuple[str, ...]) -> tuple[str, ...]:
    """Accept both ``-s a -s b`` and ``-s a,b``."""
    out: list[str] = []
    for value in values:
        out.extend(v.strip() for v in value.split(",") if v.strip())
    return tuple(out)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-s",
    "--subscription",
    "subscriptions",
    multiple=True,
    metavar="ID",
    callback=_split_values,
    help="Subscription ID to process (repeatable). Defaults to the config file list.",
)
@click.option(
    "-r",
    "--role",
    "roles",
    multiple=True,
    metavar="NAME",
    callback=_split_values,
    help="Role display name to activate (repeatable, case-insensitive). Defaults to all eligible.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    envvar="PIMBULK_CONFIG",
    help="Config file with the default subscription list.",
)
@click.option(
    "--justification",
    default=DEFAULT_JUSTIFICATION,
    show_default=True,
    help="Justification recorded on each activation request.",
)
@click.option(
    "--output",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Output format.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging on stderr.")
@click.version_option(package_name="pimbulk")
def main(
    subscriptions: tuple[str, ...],
    roles: tuple[str, ...],
    config_path: Path | None,
    justification: str,
    output: str,
    verbose: bool,
) -> None:
    """Bulk-activate eligible Azure PIM roles across multiple subscriptions.

    Roles that are already active are skipped. Each activation uses the
    maximum duration allowed by the role's PIM policy (8 hours if unknown).

    Exit code is 0 once every subscription has been attempted, 2 when no
    Azure credential is available.
    """
    # Diagnostics (warnings, logs) go to stderr; the report goes to stdout.
    err = Console(stderr=True, highlight=False)
    _configure_logging(verbose, err)

    # 1. Subscriptions: command line first, config file otherwise
    if not subscriptions:
        config = load_default_subscriptions(config_path)
        if config.warning:
            err.print(f"[yellow]Warning:[/yellow] {config.warning}")
        subscriptions = config.subscriptions
    if not subscriptions:
        err.print("[yellow]Warning:[/yellow] No subscriptions to process.")
        return

    # 2. Credentials
    credential = DefaultAzureCredential(exclude_interactive_browser_credential=False)
    try:
        credential.get_token(MANAGEMENT_SCOPE)
    except ClientAuthenticationError as exc:
        err.print(f"[bold red]Authentication failed:[/bold red] {exc.message or exc}")
        sys.exit(2)

    subscription_client = SubscriptionClient(credential)

    def authz_factory(subscription_id: str) -> AuthorizationManagementClient:
        return AuthorizationManagementClient(credential, subscription_id)

    # 3. Activate and report
    formatter = get_formatter(output, console=Console(highlight=False))
    finished: list[str] = []
    current: str | None = None
    try:
        for event in activate_roles(
            subscriptions,
            roles,
            subscription_client,
            authz_factory,
            justification=justification,
        ):
            if isinstance(event, (AccountStarted, AccountSkipped)):
                if current is not None:
                    finished.append(current)
                current = event.subscription_id
            formatter.render(event)
    except KeyboardInterrupt:
        formatter.finish()
        incomplete = [s for s in subscriptions if s not in finished]
        err.print(
            "[bold red]Interrupted.[/bold red] Not completed: " + ", ".join(incomplete)
        )
        sys.exit(130)
    except ClientAuthenticationError as exc:
        formatter.finish()
        err.print(f"[bold red]Authentication failed:[/bold red] {exc.message or exc}")
        sys.exit(2)

    formatter.finish()


def _configure_logging(verbose: bool, console: Console) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    logging.getLogger("azure").setLevel(logging.DEBUG if verbose else logging.WARNING)
