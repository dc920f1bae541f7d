"""Console progress output for pipeline runs."""

from __future__ import annotations

import threading
from datetime import datetime

import click


def _format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"


class ConsoleReporter:
    """Reporter printing timestamped, coloured task lines with click.

    Lines from worker threads are serialized so they never interleave.
    """

    def __init__(self, err: bool = False):
        self.err = err
        self._lock = threading.Lock()

    def _echo(self, text: str) -> None:
        stamp = click.style(datetime.now().strftime("%H:%M:%S"), fg="bright_black")
        with self._lock:
            click.echo(f"[{stamp}] {text}", err=self.err)

    def task_started(self, name: str) -> None:
        self._echo(f"Starting '{click.style(name, fg='cyan')}'...")

    def task_finished(self, name: str, duration: float) -> None:
        self._echo(
            f"Finished '{click.style(name, fg='cyan')}' after "
            f"{click.style(_format_duration(duration), fg='magenta')}"
        )

    def task_failed(self, name: str, error: BaseException, duration: float) -> None:
        self._echo(
            click.style(f"'{name}' errored after {_format_duration(duration)}", fg="red")
        )

    def task_skipped(self, name: str, failed_dependency: str) -> None:
        self._echo(
            click.style(f"'{name}' not run: '{failed_dependency}' failed", fg="yellow")
        )

    def message(self, name: str, text: str) -> None:
        self._echo(f"{click.style(name, fg='cyan')}: {text}")
