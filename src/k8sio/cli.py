"""k8sio CLI."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from k8sio import __version__
from k8sio._constants import DEFAULT_OUTPUT_DIR
from k8sio.benchmark import BenchmarkRun, OrchestrationError, Phase, RunCancelled
from k8sio.config import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigValidationError,
    K8sIOConfig,
    generate_example_config_yaml,
    load_config,
)
from k8sio.deploy import TemplateRenderError
from k8sio.journal import CommandName, EventType, Journal
from k8sio.k8s import K8sClient, K8sConnectionError, K8sError, get_k8s_client
from k8sio.results import ResultCapture
from k8sio.workloads import FioWorkload, HammerDBWorkload, Workload, create_workload

# Default config file name for init
DEFAULT_CONFIG = "k8sio.yaml"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="k8sio",
    help="Run FIO and HammerDB benchmarks on Kubernetes",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog="[dim]Workflow: init -> validate -> run -> results -> cleanup[/dim]",
)

console = Console()

ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to configuration YAML file"),
]
OutputDirOption = Annotated[
    Path,
    typer.Option("--output-dir", help="Directory for CSV files, manifests and the journal"),
]


# =============================================================================
# Helper Functions
# =============================================================================


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich, once per process."""
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=verbose))
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def print_success(message: str) -> None:
    console.print(f"[green]OK[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]ERROR[/red] {message}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]WARN[/yellow] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]...[/blue] {message}")


def _load_config_or_exit(config_file: Path) -> K8sIOConfig:
    try:
        return load_config(config_file)
    except ConfigFileNotFoundError as e:
        print_error(f"File not found: {e}")
        raise typer.Exit(1)  # noqa: B904
    except ConfigValidationError as e:
        print_error("Config validation failed:")
        for err in e.errors:
            loc = ".".join(str(x) for x in err["loc"])
            console.print(f"  [red]*[/red] {loc}: {err['msg']}")
        raise typer.Exit(1)  # noqa: B904
    except ConfigError as e:
        print_error(f"Config error: {e}")
        raise typer.Exit(1)  # noqa: B904


def _workload_or_exit(cfg: K8sIOConfig, k8s: K8sClient | None = None) -> Workload:
    try:
        workload = create_workload(cfg, k8s=k8s)
    except ConfigValidationError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904

    problems = workload.validate()
    if problems:
        print_error(f"{workload.name} workload is not runnable:")
        for problem in problems:
            console.print(f"  [red]*[/red] {problem}")
        raise typer.Exit(1)
    return workload


def _k8s_or_exit(namespace: str) -> K8sClient:
    try:
        return get_k8s_client(namespace=namespace)
    except K8sConnectionError as e:
        print_error(f"Cannot connect to Kubernetes: {e}")
        raise typer.Exit(1)  # noqa: B904


def _write_manifests(workload: Workload, output_dir: Path) -> list[Path]:
    try:
        files = workload.generate_manifests()
    except TemplateRenderError as e:
        print_error(f"Failed to render manifests: {e}")
        raise typer.Exit(1)  # noqa: B904

    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for index, (name, text) in enumerate(files.items(), start=1):
        path = output_dir / f"{index:02d}-{name}"
        path.write_text(text)
        written.append(path)
    return written


def _print_phase(run: BenchmarkRun, old: Phase, new: Phase) -> None:
    if new == Phase.FAILED:
        print_error(f"{run.trunc_id}: {old.value} -> {new.value}")
    elif new == Phase.COMPLETED:
        print_success(f"{run.trunc_id}: {old.value} -> {new.value}")
    else:
        print_info(f"{run.trunc_id}: {old.value} -> {new.value}")


# =============================================================================
# Commands
# =============================================================================


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Run FIO and HammerDB benchmarks on Kubernetes."""
    setup_logging(verbose)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"k8sio version {__version__}")


@app.command()
def init(
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output file path for configuration"),
    ] = Path(DEFAULT_CONFIG),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file"),
    ] = False,
) -> None:
    """Write an example configuration file."""
    if output.exists() and not force:
        print_error(f"{output} already exists (use --force to overwrite)")
        raise typer.Exit(1)

    output.write_text(generate_example_config_yaml())
    print_success(f"Created configuration file: {output}")
    print_info(f"Edit the workload section, then run: k8sio validate -c {output}")


@app.command()
def validate(config_file: ConfigOption) -> None:
    """Validate a configuration file and its workload arguments."""
    console.print(Panel(f"Validating: [bold]{config_file}[/bold]", expand=False))
    cfg = _load_config_or_exit(config_file)
    print_success("Config syntax valid")

    workload = _workload_or_exit(cfg)
    print_success(f"{workload.name} workload arguments valid")
    console.print(f"  Namespace: {cfg.namespace}")
    console.print(f"  Run id:    {cfg.uuid}")
    if "uuid" not in cfg.model_fields_set:
        print_warning("No uuid set; each command generates a new one, so cleanup cannot find this run")


@app.command()
def manifests(
    config_file: ConfigOption,
    output_dir: OutputDirOption = Path(DEFAULT_OUTPUT_DIR) / "manifests",
) -> None:
    """Render every manifest of a run without touching the cluster."""
    cfg = _load_config_or_exit(config_file)
    workload = _workload_or_exit(cfg)

    written = _write_manifests(workload, output_dir)
    for path in written:
        console.print(f"  {path}")
    print_success(f"Wrote {len(written)} manifest(s) to {output_dir}")


@app.command()
def run(
    config_file: ConfigOption,
    cleanup: Annotated[
        bool,
        typer.Option("--cleanup", help="Delete the run's resources afterwards"),
    ] = False,
    collect: Annotated[
        bool,
        typer.Option("--collect/--no-collect", help="Parse and report results when the run completes"),
    ] = True,
    follow: Annotated[
        bool,
        typer.Option("--follow", help="Stream the client logs while collecting"),
    ] = False,
    csv: Annotated[
        bool,
        typer.Option("--csv/--no-csv", help="Export results to CSV"),
    ] = True,
    output_dir: OutputDirOption = Path(DEFAULT_OUTPUT_DIR),
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Render manifests instead of running"),
    ] = False,
) -> None:
    """Run a benchmark.

    Walks the run through its phases, then optionally collects results
    and deletes the run's resources. Ctrl-C cancels the run.
    """
    cfg = _load_config_or_exit(config_file)

    if dry_run:
        workload = _workload_or_exit(cfg)
        written = _write_manifests(workload, output_dir / "manifests")
        print_success(f"Dry run: wrote {len(written)} manifest(s) to {output_dir / 'manifests'}")
        return

    k8s = _k8s_or_exit(cfg.namespace)
    workload = _workload_or_exit(cfg, k8s)

    console.print(
        Panel(
            f"Running [bold]{workload.name}[/bold] in namespace [bold]{cfg.namespace}[/bold]\n"
            f"Run id: {cfg.uuid}",
            expand=False,
        )
    )

    j = Journal(output_dir / "journal")
    j.open_session(config_path=config_file, run_id=cfg.uuid)
    j.begin_command(
        CommandName.RUN,
        {"cleanup": cleanup, "collect": collect, "follow": follow, "csv": csv},
    )
    j.record(
        EventType.CONFIG_LOADED,
        message=f"Loaded {workload.name} config",
        details={"workload": workload.name, "namespace": cfg.namespace},
    )

    try:
        if k8s.create_namespace(cfg.namespace):
            print_success(f"Created namespace {cfg.namespace}")
    except K8sError as e:
        print_error(f"Cannot prepare namespace {cfg.namespace}: {e}")
        j.end_command(success=False, message=str(e))
        raise typer.Exit(1)  # noqa: B904

    cancel_event = threading.Event()

    def on_sigint(signum, frame) -> None:
        print_warning("Cancelling run...")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, on_sigint)
    try:
        state = workload.run(cancel_event=cancel_event, observers=[_print_phase, j.observer()])
    except OrchestrationError as e:
        if isinstance(e, RunCancelled):
            print_warning(f"Run cancelled during {e.phase.value}")
        else:
            print_error(f"Run failed: {e}")
        j.record(
            EventType.RUN_FAILED,
            message=str(e),
            success=False,
            details={"phase": e.phase.value, "resource": e.resource},
        )
        if cleanup:
            _cleanup(workload, j)
        j.end_command(success=False, message=str(e))
        raise typer.Exit(1)  # noqa: B904
    except TemplateRenderError as e:
        # plan() renders before anything is applied
        print_error(f"Failed to render manifests: {e}")
        j.record(EventType.RUN_FAILED, message=str(e), success=False, details={"phase": "render"})
        j.end_command(success=False, message=str(e))
        raise typer.Exit(1)  # noqa: B904
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    j.record(
        EventType.RUN_COMPLETE,
        message=f"Run {state.trunc_id} completed",
        success=True,
        details={"phases": [p.value for p in state.phase_sequence()]},
    )
    print_success(f"Run {state.trunc_id} completed")

    if collect:
        if isinstance(workload, FioWorkload):
            report = workload.collect_results(
                follow=follow, export_csv=csv, output_dir=output_dir, console=console
            )
            if report.csv_path is not None:
                j.record(
                    EventType.RESULTS_EXPORTED,
                    message=f"Exported {len(report.summaries)} row(s)",
                    details={"path": str(report.csv_path)},
                )
        elif isinstance(workload, HammerDBWorkload) and workload.args.db_benchmark:
            try:
                logs = k8s.get_job_pod_logs(workload.workload_job, cfg.namespace)
                console.print(logs, markup=False, highlight=False)
            except K8sError as e:
                print_warning(f"Failed to read logs of {workload.workload_job}: {e}")

    if cleanup:
        _cleanup(workload, j)
    j.end_command(success=True)


def _cleanup(workload: Workload, j: Journal) -> bool:
    try:
        workload.cleanup()
    except K8sError as e:
        print_error(f"Cleanup failed: {e}")
        return False
    j.record(
        EventType.CLEANUP_COMPLETE,
        message=f"Deleted resources of run {workload.trunc_uuid}",
        details={"selectors": workload.cleanup_selectors()},
    )
    print_success(f"Deleted resources of run {workload.trunc_uuid}")
    return True


@app.command(name="cleanup")
def cleanup_command(
    config_file: ConfigOption,
    output_dir: OutputDirOption = Path(DEFAULT_OUTPUT_DIR),
) -> None:
    """Delete every resource labelled with the run's uuid."""
    cfg = _load_config_or_exit(config_file)
    if "uuid" not in cfg.model_fields_set:
        print_warning("No uuid set in the config; only resources of a new, unused run id match")

    k8s = _k8s_or_exit(cfg.namespace)
    workload = _workload_or_exit(cfg, k8s)

    j = Journal(output_dir / "journal")
    j.open_session(config_path=config_file, run_id=cfg.uuid)
    j.begin_command(CommandName.CLEANUP)
    ok = _cleanup(workload, j)
    j.end_command(success=ok)
    if not ok:
        raise typer.Exit(1)
    j.close_session()


@app.command()
def results(
    logfile: Annotated[
        Path,
        typer.Argument(help="Saved fio client log"),
    ],
    test_id: Annotated[
        str,
        typer.Option("--test-id", help="Label used in the CSV file name (default: log file name)"),
    ] = "",
    csv: Annotated[
        bool,
        typer.Option("--csv/--no-csv", help="Export results to CSV"),
    ] = True,
    output_dir: OutputDirOption = Path("."),
) -> None:
    """Parse FIO results from a saved client log."""
    if not logfile.exists():
        print_error(f"File not found: {logfile}")
        raise typer.Exit(1)

    try:
        text = logfile.read_text(errors="replace")
    except OSError as e:
        print_error(f"Cannot read {logfile}: {e}")
        raise typer.Exit(1)  # noqa: B904

    capture = ResultCapture(test_id or logfile.stem, console=console, export=csv, output_dir=output_dir)
    capture.from_text(text)


@app.command()
def journal(
    session_id: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Show events for a specific session"),
    ] = None,
    last: Annotated[
        int,
        typer.Option("--last", "-n", help="Show last N sessions"),
    ] = 10,
    journal_dir: Annotated[
        Path,
        typer.Option("--dir", help="Journal directory"),
    ] = Path(DEFAULT_OUTPUT_DIR) / "journal",
) -> None:
    """View the run journal.

    Examples:

        k8sio journal

        k8sio journal --session 20260129-120000-a1b2c3
    """
    j = Journal(journal_dir)

    if session_id:
        events = j.load_session_events(session_id)
        if not events:
            print_warning(f"No events found for session {session_id}")
            return

        console.print(Panel(f"Session: [bold]{session_id}[/bold]", expand=False))
        table = Table()
        table.add_column("Time", style="dim", width=19)
        table.add_column("Event", style="cyan")
        table.add_column("Command", style="bold")
        table.add_column("Message")
        table.add_column("Status", justify="center")

        for event in events:
            success = event.get("success")
            status = ""
            if success is True:
                status = "[green]OK[/green]"
            elif success is False:
                status = "[red]FAIL[/red]"
            table.add_row(
                event.get("timestamp", "")[:19],
                event.get("event_type", ""),
                event.get("command", "") or "",
                event.get("message", ""),
                status,
            )
        console.print(table)
        return

    sessions = j.list_sessions()
    if not sessions:
        print_warning(f"No journal sessions found in {journal_dir}")
        return

    console.print(Panel("k8sio Journal Sessions", expand=False))
    table = Table()
    table.add_column("Session ID", style="cyan")
    table.add_column("Run")
    table.add_column("Started", style="dim")
    table.add_column("Events", justify="right")
    table.add_column("Commands")
    table.add_column("Status")

    for s in sessions[:last]:
        status = "[green]closed[/green]" if s["closed"] else "[yellow]active[/yellow]"
        table.add_row(
            s["session_id"],
            s.get("run_id", "")[:8],
            s.get("started", "")[:19],
            str(s.get("event_count", 0)),
            ", ".join(s.get("commands", [])),
            status,
        )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
