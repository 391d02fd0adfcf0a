"""Typer CLI entrypoint for packtools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from packtools.audit.differ import compute_project_diff
from packtools.audit.models import ConfigurationDiff
from packtools.client import (
    PackagingClient,
    PackagingClientOptions,
    PackagingRunOptions,
)
from packtools.configuration.serializer import load_project
from packtools.configuration.settings import PacktoolsSettings, load_settings
from packtools.errors import PackagingCancelledError, PackagingError
from packtools.models import IssueSeverity, PackagingResult, Platform
from packtools.telemetry.dashboard_models import DashboardQuery, DashboardSnapshot
from packtools.telemetry.store import DashboardTelemetryStore

app = typer.Typer(help="Packtools CLI")
_CONSOLE = Console()
_LOGGING_CONFIGURED = False
_SEVERITY_STYLES = {
    IssueSeverity.INFO: "cyan",
    IssueSeverity.WARNING: "yellow",
    IssueSeverity.ERROR: "bold red",
}


def configure_logging(level: int = logging.WARNING) -> None:
    """Configure Rich-backed logging once for CLI commands.

    Args:
        level: Root logging level.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED:
        return
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
    )
    _LOGGING_CONFIGURED = True


def _load_settings_or_exit(settings_file: Path | None) -> PacktoolsSettings:
    try:
        settings = load_settings(settings_file)
    except PackagingError as exc:
        _render_error(str(exc))
        raise typer.Exit(code=1) from exc
    configure_logging(settings.logging.resolved_level())
    return settings


def _parse_platform(value: str) -> Platform:
    try:
        return Platform(value)
    except ValueError as exc:
        raise typer.BadParameter(
            f"unknown platform '{value}'; expected windows, macos or linux."
        ) from exc


def _parse_properties(values: list[str]) -> dict[str, str]:
    properties: dict[str, str] = {}
    for item in values:
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise typer.BadParameter(f"property '{item}' must look like KEY=VALUE.")
        properties[key.strip()] = value
    return properties


def _render_error(message: str) -> None:
    _CONSOLE.print(
        Panel(message, title="Error", border_style="bold red", expand=True)
    )


def _render_result(result: PackagingResult) -> None:
    if result.artifacts:
        table = Table(title="Artifacts", show_header=True, header_style="bold cyan")
        table.add_column("Format", style="bold")
        table.add_column("Path")
        for artifact in result.artifacts:
            table.add_row(artifact.format, artifact.path)
        _CONSOLE.print(table)
    if result.issues:
        table = Table(title="Issues", show_header=True, header_style="bold cyan")
        table.add_column("Severity")
        table.add_column("Code", style="bold")
        table.add_column("Message")
        for issue in result.issues:
            style = _SEVERITY_STYLES[issue.severity]
            table.add_row(
                f"[{style}]{issue.severity.value}[/{style}]", issue.code, issue.message
            )
        _CONSOLE.print(table)
    status = "[green]succeeded[/green]" if result.success else "[red]failed[/red]"
    _CONSOLE.print(f"Packaging {status}.")


def _render_dashboard(snapshot: DashboardSnapshot) -> None:
    if not snapshot.recent_jobs:
        _CONSOLE.print(
            Panel(
                "No packaging runs recorded yet.",
                title="Dashboard",
                border_style="yellow",
                expand=True,
            )
        )
    else:
        table = Table(title="Recent Jobs", show_header=True, header_style="bold cyan")
        table.add_column("Completed", style="dim")
        table.add_column("Job", style="bold")
        table.add_column("Platform", style="magenta")
        table.add_column("Channel")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Blocking", justify="right")
        for job in snapshot.recent_jobs:
            table.add_row(
                job.completed_at.isoformat(timespec="seconds"),
                job.display_name,
                job.platform.value,
                job.channel,
                job.status.value,
                f"{job.duration.total_seconds():.1f}s",
                str(job.blocking_issue_count),
            )
        _CONSOLE.print(table)
    if snapshot.release_channels:
        table = Table(
            title="Release Channels", show_header=True, header_style="bold cyan"
        )
        table.add_column("Channel", style="bold")
        table.add_column("Version")
        table.add_column("Deployments (30d)", justify="right")
        table.add_column("Paused")
        for channel in snapshot.release_channels:
            table.add_row(
                channel.channel,
                channel.latest_version,
                str(channel.deployments_last_30_days),
                "yes" if channel.is_paused else "no",
            )
        _CONSOLE.print(table)


def _render_diff(diff: ConfigurationDiff) -> None:
    if diff.is_empty:
        _CONSOLE.print("No configuration changes.")
        return
    table = Table(
        title="Configuration Diff", show_header=True, header_style="bold cyan"
    )
    table.add_column("Scope", style="magenta")
    table.add_column("Key", style="bold")
    table.add_column("Change")
    table.add_column("Before")
    table.add_column("After")
    for change in diff.metadata_changes:
        table.add_row(
            "metadata",
            change.key,
            change.type.value,
            change.before or "",
            change.after or "",
        )
    for platform_diff in diff.platform_diffs:
        scope = platform_diff.platform.value
        for item in platform_diff.added_formats:
            table.add_row(scope, item, "format added", "", "")
        for item in platform_diff.removed_formats:
            table.add_row(scope, item, "format removed", "", "")
        for change in platform_diff.property_changes:
            table.add_row(
                scope,
                change.key,
                change.type.value,
                change.before or "",
                change.after or "",
            )
    _CONSOLE.print(table)


@app.command("pack")
def pack_command(  # noqa: PLR0913
    project_file: Annotated[
        Path,
        typer.Argument(
            exists=True, file_okay=True, dir_okay=False, help="Project document."
        ),
    ],
    platform: Annotated[
        str, typer.Option("--platform", "-p", help="windows, macos or linux.")
    ],
    formats: Annotated[
        list[str] | None,
        typer.Option("--format", "-f", help="Format to produce; repeatable."),
    ] = None,
    configuration: Annotated[
        str, typer.Option(help="Build configuration name.")
    ] = "Release",
    output: Annotated[
        Path | None,
        typer.Option(file_okay=False, dir_okay=True, help="Artifact directory."),
    ] = None,
    properties: Annotated[
        list[str] | None,
        typer.Option("--property", "-P", help="KEY=VALUE override; repeatable."),
    ] = None,
    plugin_dirs: Annotated[
        list[str] | None,
        typer.Option("--plugin-dir", help="Extra plugin directory; repeatable."),
    ] = None,
    settings_file: Annotated[
        Path | None,
        typer.Option(
            "--settings",
            file_okay=True,
            dir_okay=False,
            help="Path to packtools settings YAML/JSON file.",
        ),
    ] = None,
) -> None:
    """Run one packaging request and print artifacts and issues.

    Args:
        project_file: Project document path.
        platform: Target platform.
        formats: Requested formats; defaults to the project's formats.
        configuration: Build configuration name.
        output: Artifact output directory.
        properties: Request property overrides.
        plugin_dirs: Extra plugin probe directories.
        settings_file: Optional settings file override.

    Raises:
        Exit: With code 1 when the run fails or cannot start.
    """
    settings = _load_settings_or_exit(settings_file)
    run_options = PackagingRunOptions(
        project_path=project_file,
        platform=_parse_platform(platform),
        formats=tuple(formats or ()),
        configuration=configuration,
        output_directory=str(output) if output is not None else None,
        properties=_parse_properties(properties or []),
        plugin_directories=tuple(plugin_dirs or ()),
    )
    client = PackagingClient(PackagingClientOptions(settings=settings))
    try:
        result = client.pack(run_options)
    except PackagingCancelledError as exc:
        _render_error(str(exc))
        raise typer.Exit(code=1) from exc
    except PackagingError as exc:
        _render_error(str(exc))
        raise typer.Exit(code=1) from exc
    _render_result(result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("dashboard")
def dashboard_command(
    channel: Annotated[
        str | None, typer.Option(help="Only show jobs for this release channel.")
    ] = None,
    failures_only: Annotated[
        bool, typer.Option("--failures-only", help="Only show failed jobs.")
    ] = False,
    max_jobs: Annotated[
        int, typer.Option("--max-jobs", help="Maximum jobs to list.")
    ] = 50,
    settings_file: Annotated[
        Path | None,
        typer.Option(
            "--settings",
            file_okay=True,
            dir_okay=False,
            help="Path to packtools settings YAML/JSON file.",
        ),
    ] = None,
) -> None:
    """Show recent packaging runs from the persisted dashboard store.

    Args:
        channel: Optional release channel filter.
        failures_only: Whether to show failed jobs only.
        max_jobs: Maximum number of jobs.
        settings_file: Optional settings file override.
    """
    settings = _load_settings_or_exit(settings_file)
    store_path = settings.telemetry.store_path
    store = DashboardTelemetryStore(
        Path(store_path).expanduser() if store_path else None
    )
    aggregator = store.create_aggregator()
    snapshot = aggregator.get_snapshot(
        DashboardQuery(channel=channel, failures_only=failures_only, max_jobs=max_jobs)
    )
    _render_dashboard(snapshot)


@app.command("diff")
def diff_command(
    baseline_file: Annotated[
        Path,
        typer.Argument(exists=True, file_okay=True, dir_okay=False),
    ],
    target_file: Annotated[
        Path,
        typer.Argument(exists=True, file_okay=True, dir_okay=False),
    ],
) -> None:
    """Show configuration changes between two project documents.

    Args:
        baseline_file: Earlier project document.
        target_file: Later project document.

    Raises:
        Exit: With code 1 when either document cannot be loaded.
    """
    configure_logging()
    try:
        baseline = load_project(baseline_file)
        target = load_project(target_file)
    except PackagingError as exc:
        _render_error(str(exc))
        raise typer.Exit(code=1) from exc
    _render_diff(compute_project_diff(baseline, target))


if __name__ == "__main__":
    app()
