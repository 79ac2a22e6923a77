import logging
from pathlib import Path
from typing import List, Optional

import typer

from pmr.config import configure_logging, ensure_home, log_root, registry_path
from pmr.errors import DuplicateNameError, NotFoundError, PmrError
from pmr.registry.models import DEFAULT_NAMESPACE
from pmr.registry.store import ProcessStore
from pmr.reporting import collect_rows, collect_system_rows, render_table
from pmr.runtime.controller import LifecycleController, LifecycleOutcome
from pmr.runtime.log_sink import follow

logger = logging.getLogger("pmr.cli")

app = typer.Typer(help="Process manager: start, list, stop, restart, delete and tail supervised programs.")

# Everything after the first positional belongs to the supervised program.
POSITIONAL_TAIL = {"allow_interspersed_args": False}


def _build_controller() -> LifecycleController:
    home = ensure_home()
    store = ProcessStore(registry_path(home))
    return LifecycleController(store, log_root(home))


def _report_error(exc: PmrError) -> None:
    """Print exc; user-facing conditions exit 0, everything else exits 1."""
    if isinstance(exc, (NotFoundError, DuplicateNameError)):
        typer.echo(str(exc), err=True)
        return
    logger.error("%s: %s", type(exc).__name__, exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _print_processes(controller: LifecycleController) -> None:
    typer.echo("\nCurrent process list:")
    render_table(collect_rows(controller.reconcile()))


def _report(outcome: LifecycleOutcome, controller: LifecycleController) -> None:
    typer.echo(outcome.message, err=outcome.is_warning)
    _print_processes(controller)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print diagnostic logging to stderr"),
):
    configure_logging(verbose=verbose)


@app.command(context_settings=POSITIONAL_TAIL)
def start(
    target: Optional[str] = typer.Argument(None, help="Process id or name, or the program to run"),
    args: Optional[List[str]] = typer.Argument(None, help="Arguments for the program"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON config with name, program and args"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Process name"),
    namespace: str = typer.Option(DEFAULT_NAMESPACE, "--namespace", help="Namespace for the process"),
):
    """Start a process."""
    try:
        controller = _build_controller()
        outcome = controller.start(target, config_path=config, name=name, namespace=namespace, args=args)
    except PmrError as exc:
        _report_error(exc)
        return
    _report(outcome, controller)


def list_processes(
    system: bool = typer.Option(False, "--system", help="Show all system processes"),
):
    """List supervised processes. Alias: ls, ps, status"""
    if system:
        render_table(collect_system_rows())
        return
    try:
        controller = _build_controller()
        records = controller.reconcile()
    except PmrError as exc:
        _report_error(exc)
        return
    render_table(collect_rows(records))


app.command("list")(list_processes)
for _alias in ("ls", "ps", "status"):
    app.command(_alias, hidden=True)(list_processes)


@app.command()
def stop(target: str = typer.Argument(..., help="Process id or name")):
    """Stop a process."""
    try:
        controller = _build_controller()
        outcome = controller.stop(target)
    except PmrError as exc:
        _report_error(exc)
        return
    _report(outcome, controller)


@app.command(context_settings=POSITIONAL_TAIL)
def restart(
    target: Optional[str] = typer.Argument(None, help="Process id or name, or the program to run"),
    args: Optional[List[str]] = typer.Argument(None, help="Arguments for the program"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON config with name, program and args"),
    namespace: str = typer.Option(DEFAULT_NAMESPACE, "--namespace", help="Namespace for the process"),
):
    """Restart a process, or start it when nothing matches the target."""
    try:
        controller = _build_controller()
        outcome = controller.restart(target, config_path=config, namespace=namespace, args=args)
    except PmrError as exc:
        _report_error(exc)
        return
    _report(outcome, controller)


def delete(target: str = typer.Argument(..., help="Process id or name")):
    """Delete a process. Alias: rm, del"""
    try:
        controller = _build_controller()
        outcome = controller.delete(target)
    except PmrError as exc:
        _report_error(exc)
        return
    _report(outcome, controller)


app.command("delete")(delete)
for _alias in ("rm", "del"):
    app.command(_alias, hidden=True)(delete)


def log(target: str = typer.Argument(..., help="Process id or name")):
    """Follow the log of a process. Alias: logs"""
    try:
        path = _build_controller().log_file(target)
    except PmrError as exc:
        _report_error(exc)
        return
    if not path.exists():
        typer.echo(f"Log file does not exist: {path}", err=True)
        return

    typer.echo(f"Following log file: {path}")
    typer.echo("Press Ctrl+C to stop...")
    try:
        for line in follow(path):
            typer.echo(line, nl=False)
    except KeyboardInterrupt:
        typer.echo("\nStopped following log.")
    except OSError as exc:
        typer.echo(f"Error reading log: {exc}", err=True)
        raise typer.Exit(code=1)


app.command("log")(log)
app.command("logs", hidden=True)(log)


if __name__ == "__main__":
    app()
