"""CLI entry point for the jUnit XML report uploader.

Provides commands:
  - upload: Validate and upload jUnit XML reports to the CI intake
  - config: Manage the intake API key stored in the system keyring
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import keyring
import typer
from keyring.errors import KeyringError, PasswordDeleteError
from rich.console import Console
from rich.markup import escape

from junit_uploader.config import KEY_NAME, SERVICE_NAME, load_upload_config
from junit_uploader.constants import DEFAULT_MAX_CONCURRENCY
from junit_uploader.discovery import normalize_path

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Upload jUnit XML test reports to the CI test-report intake",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (API key)")
app.add_typer(config_app, name="config")


def _enable_verbose_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    pkg_logger = logging.getLogger("junit_uploader")
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(logging.DEBUG)


@app.command()
def upload(
    base_paths: Annotated[
        list[str],
        typer.Argument(help="Report files and/or directories containing *.xml reports"),
    ],
    service: Annotated[
        str | None,
        typer.Option("--service", help="Service name (falls back to DD_SERVICE)"),
    ] = None,
    env: Annotated[
        str | None,
        typer.Option("--env", help="Environment tag (DD_ENV takes precedence)"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Validate and list reports without uploading"),
    ] = False,
    tags: Annotated[
        list[str] | None,
        typer.Option("--tags", help="Extra key:value tag, repeatable"),
    ] = None,
    max_concurrency: Annotated[
        int,
        typer.Option("--max-concurrency", min=1, help="Max concurrent uploads"),
    ] = DEFAULT_MAX_CONCURRENCY,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log pipeline details to stderr"),
    ] = False,
) -> None:
    """Upload jUnit XML test report files.

    Examples:
      junit-upload upload --service my-service .
      junit-upload upload --service my-service --tags key1:value1 reports/unit reports/e2e
    """
    if verbose:
        _enable_verbose_logging()

    try:
        config = load_upload_config(
            service=service,
            env=env,
            dry_run=dry_run,
            tags=tags,
            max_concurrency=max_concurrency,
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    # Import upload modules here to keep CLI startup fast for config commands
    from junit_uploader.upload.client import IntakeClient
    from junit_uploader.upload.orchestrator import BatchOrchestrator
    from junit_uploader.upload.progress import ConsoleReporter
    from junit_uploader.upload.retry import UploadAborted

    client = None
    if not config.dry_run:
        assert config.api_key_provider is not None
        try:
            api_key = config.api_key_provider()
        except RuntimeError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        client = IntakeClient(api_key=api_key, site=config.site)

    reporter = ConsoleReporter(console)
    normalized = [normalize_path(p) for p in base_paths]
    reporter.command_info(normalized, config.service, config.max_concurrency, config.dry_run)

    orchestrator = BatchOrchestrator(config, client, reporter)
    payloads = orchestrator.prepare(normalized)

    async def _run_upload():
        reporter.start(total=len(payloads))
        try:
            return await orchestrator.run(payloads)
        finally:
            reporter.stop()
            if client is not None:
                await client.aclose()

    try:
        asyncio.run(_run_upload())
    except UploadAborted as e:
        console.print(f"[red]Upload stopped:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# config commands
# ----------------------------------------------------------------------


@config_app.command("set-api-key")
def set_api_key(
    key: Annotated[
        str,
        typer.Argument(help="Intake API key to store in the system keyring"),
    ],
) -> None:
    """Store the intake API key in the system keyring."""
    if not key or key.strip() == "":
        console.print("[red]Error:[/red] API key cannot be empty")
        raise typer.Exit(code=1)

    try:
        keyring.set_password(SERVICE_NAME, KEY_NAME, key)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to store API key: {e}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓[/green] API key stored in system keyring (service: {SERVICE_NAME})"
    )


@config_app.command("get-api-key")
def show_api_key() -> None:
    """Display the stored intake API key (masked)."""
    api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if not api_key:
        console.print(
            "[yellow]No API key found in keyring.[/yellow]\n"
            "Set it with: [bold]junit-upload config set-api-key YOUR_KEY[/bold]"
        )
        raise typer.Exit(code=1)

    if len(api_key) > 8:
        masked = api_key[:8] + "*" * (len(api_key) - 8)
    else:
        masked = api_key[:2] + "*" * max(1, len(api_key) - 2)
    console.print(f"[green]API key:[/green] {masked}")


@config_app.command("remove-api-key")
def remove_api_key() -> None:
    """Delete the stored intake API key from the system keyring."""
    try:
        keyring.delete_password(SERVICE_NAME, KEY_NAME)
    except PasswordDeleteError:
        console.print("[yellow]Warning:[/yellow] No API key found in keyring.")
        return
    console.print(
        f"[green]✓[/green] API key removed from system keyring (service: {SERVICE_NAME})"
    )


def main() -> None:
    app()
