"""
templit CLI.

Operational commands around template integration tests: validate the
configuration, inspect or cancel Dataflow jobs, and remove leftover test
tables from a static Bigtable instance.
"""

import logging

import logfire
import typer
from google.api_core.exceptions import GoogleAPICallError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from utils.config import LogfireConfig, load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
)

# Google client libraries are chatty at INFO
for noisy_logger in ("google", "google.auth", "google.api_core", "urllib3", "grpc"):
    logging.getLogger(noisy_logger).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)
console = Console()

__version__ = "0.1.0"

app = typer.Typer(
    name="templit",
    help="Managed-resource integration testing for Dataflow templates",
    no_args_is_help=True,
)


def _initialize_logfire(logfire_config: LogfireConfig) -> None:
    """Configure Logfire when enabled. Failures only produce a warning."""
    if not logfire_config.enabled:
        logger.info("Logfire observability disabled")
        return

    try:
        logfire.configure(
            token=logfire_config.token,
            service_name=logfire_config.service_name,
            environment=logfire_config.environment,
            send_to_logfire=logfire_config.send_to_logfire,
            console=None if logfire_config.console_logging else False,
        )
        logging.getLogger().addHandler(logfire.LogfireLoggingHandler())
        logging.getLogger().setLevel(logfire_config.log_level)
        logger.info(f"Logfire observability enabled for {logfire_config.service_name}")
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


@app.callback()
def main() -> None:
    """templit: run and support Dataflow template integration tests."""
    return None


@app.command()
def version() -> None:
    """Show the templit version."""
    console.print(f"templit [bold]{__version__}[/bold]")


@app.command("validate-config")
def validate_config(
    env_file: str | None = typer.Option(None, "--env-file", "-e", help="Path to .env file"),
    check_credentials: bool = typer.Option(
        False, "--check-credentials", help="Also check that credentials can mint a token"
    ),
) -> None:
    """Validate the configuration and show a summary."""
    try:
        config = load_config(env_file)
    except Exception as e:
        console.print(f"[red]❌ Configuration error:[/red] {e}")
        raise typer.Exit(code=1) from e

    results = config.validate_configuration()

    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Project", results["project"])
    table.add_row("Region", results["region"])
    table.add_row("Artifact bucket", config.gcp.artifact_bucket or "-")
    table.add_row("Static Bigtable instance", results["static_instance"] or "-")
    table.add_row("Templates", str(results["templates_count"]))
    table.add_row("Poll interval (s)", str(config.operator.poll_interval_seconds))
    table.add_row("Timeout (min)", str(config.operator.timeout_minutes))
    table.add_row("Cleanup failure policy", config.cleanup.failure_policy)
    console.print(table)

    for name, path in sorted(config.template_specs.items()):
        console.print(f"  • {name}: {path}")

    for warning in results["warnings"]:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")
    for error in results["errors"]:
        console.print(f"[red]❌ {error}[/red]")

    if not results["valid"]:
        raise typer.Exit(code=1)

    if check_credentials:
        from utils import gcp

        try:
            credentials = gcp.get_credentials(config.gcp)
        except ValueError as e:
            console.print(f"[red]❌ {e}[/red]")
            raise typer.Exit(code=1) from e
        if not gcp.check_credentials(credentials):
            console.print("[red]❌ Credentials could not obtain an access token[/red]")
            raise typer.Exit(code=1)
        console.print("[green]✅ Credentials are valid[/green]")

    console.print("[green]✅ Configuration is valid[/green]")


def _launcher_and_config(env_file: str | None):
    from launcher.factory import create_pipeline_launcher
    from utils.gcp import get_credentials

    config = load_config(env_file)
    _initialize_logfire(config.logfire)
    credentials = get_credentials(config.gcp)
    return create_pipeline_launcher(credentials), config


@app.command()
def status(
    job_id: str = typer.Argument(..., help="Dataflow job id"),
    region: str | None = typer.Option(None, "--region", "-r", help="Job region"),
    env_file: str | None = typer.Option(None, "--env-file", "-e", help="Path to .env file"),
) -> None:
    """Show the state of a Dataflow job."""
    try:
        launcher, config = _launcher_and_config(env_file)
        info = launcher.get_job_info(config.gcp.project, region or config.gcp.region, job_id)
    except Exception as e:
        console.print(f"[red]❌ Failed to get job status:[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Job {job_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in info.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def cancel(
    job_id: str = typer.Argument(..., help="Dataflow job id"),
    region: str | None = typer.Option(None, "--region", "-r", help="Job region"),
    wait: bool = typer.Option(False, "--wait", help="Wait until the job is terminal"),
    env_file: str | None = typer.Option(None, "--env-file", "-e", help="Path to .env file"),
) -> None:
    """Cancel a Dataflow job."""
    from launcher.operator import PipelineOperator, PollConfig

    try:
        launcher, config = _launcher_and_config(env_file)
        job_region = region or config.gcp.region
        if wait:
            poll_config = PollConfig.for_job(
                config.gcp.project, job_region, job_id, config.operator
            )
            result = PipelineOperator(launcher).cancel_job_and_finish(poll_config)
            console.print(f"[green]✅ Job {job_id} finished: {result.value}[/green]")
        else:
            state = launcher.cancel_job(config.gcp.project, job_region, job_id)
            console.print(f"[green]✅ Cancellation requested, job is {state.value}[/green]")
    except Exception as e:
        console.print(f"[red]❌ Failed to cancel job {job_id}:[/red] {e}")
        raise typer.Exit(code=1) from e


@app.command("cleanup-tables")
def cleanup_tables(
    prefix: str = typer.Option(..., "--prefix", "-p", help="Delete tables whose id starts with this"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    env_file: str | None = typer.Option(None, "--env-file", "-e", help="Path to .env file"),
) -> None:
    """Delete leftover test tables from the static Bigtable instance."""
    from resources.bigtable import BigtableResourceManager
    from utils.gcp import get_credentials

    try:
        config = load_config(env_file)
        if not config.bigtable.use_static_instance:
            console.print("[red]❌ BIGTABLE_STATIC_INSTANCE_ID is not set[/red]")
            raise typer.Exit(code=1)

        manager = BigtableResourceManager(
            test_id="cleanup",
            project_id=config.gcp.project,
            credentials=get_credentials(config.gcp),
            config=config.bigtable,
        )
        tables = manager.list_tables(prefix)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]❌ Failed to list tables:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not tables:
        console.print(f"No tables starting with {prefix!r}")
        return

    for table_id in tables:
        console.print(f"  • {table_id}")
    if not yes and not typer.confirm(f"Delete {len(tables)} table(s)?"):
        raise typer.Exit(code=0)

    deleted = 0
    failed: list[str] = []
    for table_id in tables:
        try:
            if manager.delete_table(table_id):
                deleted += 1
        except GoogleAPICallError as e:
            console.print(f"[red]❌ Failed to delete {table_id}:[/red] {e}")
            failed.append(table_id)

    console.print(f"[green]✅ Deleted {deleted} table(s)[/green]")
    if failed:
        console.print(f"[red]❌ {len(failed)} table(s) could not be deleted[/red]")
        raise typer.Exit(code=1)


def cli_main() -> None:
    """Entry point for the templit console script."""
    app()


if __name__ == "__main__":
    cli_main()
