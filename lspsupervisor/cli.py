#!/usr/bin/env python3
"""Command-line interface for the Language Server Supervisor."""

import logging
import threading
import time

import click

from lspsupervisor.commands import DEGLOB_COMMAND
from lspsupervisor.host import Range, TerminalHost, TextEditor
from lspsupervisor.servers.session import SessionState
from lspsupervisor.supervisor import activate


def _configure_logging(debug: bool) -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@click.group()
@click.option("--workspace", required=True, type=click.Path(exists=True, file_okay=False),
              help="Path to the workspace directory")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, workspace: str, debug: bool) -> None:
    """Supervise the Rust Language Server for a workspace."""
    _configure_logging(debug)
    ctx.obj = TerminalHost(workspace)


@main.command()
@click.pass_obj
def run(host: TerminalHost) -> None:
    """Run the supervisor until interrupted."""
    supervisor = activate(host)
    click.echo(f"Supervising the server for workspace: {host.workspace_path}")
    click.echo("Press Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("Stopping...")
    finally:
        supervisor.deactivate()
        click.echo("Stopped")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("start_line", type=int)
@click.argument("start_char", type=int)
@click.argument("end_line", type=int)
@click.argument("end_char", type=int)
@click.option("--timeout", default=120.0, show_default=True, help="Seconds to wait for the server")
@click.pass_obj
def deglob(host: TerminalHost, file: str, start_line: int, start_char: int,
           end_line: int, end_char: int, timeout: float) -> None:
    """Expand the glob import in FILE at the given 0-indexed range."""
    supervisor = activate(host)
    session = supervisor.session

    settled = threading.Event()
    session.on_ready(settled.set)
    session.on_state_change(
        lambda state: settled.set() if state in (SessionState.FAILED, SessionState.STOPPED) else None
    )
    if session.state in (SessionState.FAILED, SessionState.STOPPED):
        settled.set()

    try:
        if not settled.wait(timeout) or not session.is_running():
            raise click.ClickException("The server did not start")

        editor = TextEditor.for_path(file, Range.from_coordinates(start_line, start_char, end_line, end_char))
        future = host.execute_command(DEGLOB_COMMAND, editor)

        # Callbacks run in order, so the bridge's warning is out once this fires
        done = threading.Event()
        future.add_done_callback(lambda _: done.set())
        if not done.wait(timeout):
            raise click.ClickException("No response from the server")
        if future.exception() is not None:
            raise click.ClickException("deglob failed")
        click.echo("deglob request completed")
    finally:
        supervisor.deactivate()


if __name__ == "__main__":
    main()  # pylint: disable=no-value-for-parameter
