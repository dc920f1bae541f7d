"""Site generator invocation for Stheno.

The HTML itself is produced by Jekyll, run as an opaque subprocess. Its
output is streamed straight to the console (the child inherits stdout and
stderr) and a non-zero exit fails the task.

Key functions:
- site_command: Resolve the generator command line.
- site_environment: Subprocess environment for the active profile.
- run_streaming: Run a command until it exits or the run is stopped.
- build_task / watch_task: Task actions for one-shot and watch builds.
"""

from __future__ import annotations

import os
import subprocess
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path

from .config import PipelineConfig
from .executable_utils import find_executable
from .graph import TaskError


class SiteBuildError(TaskError):
    """Raised when the site generator is missing or exits with an error."""


def site_command(config: PipelineConfig, watch: bool = False) -> list[str]:
    """Build the generator command line.

    Args:
        config: Pipeline configuration.
        watch: Whether to ask the generator to keep rebuilding on changes.

    Returns:
        Argument list with the executable resolved to a full path.

    Raises:
        SiteBuildError: If the executable cannot be found.
    """
    command = list(config.site.command)
    binary = find_executable(command[0], config.project_root)
    if not binary:
        raise SiteBuildError(
            f"{command[0]} not found. Install it (e.g. `gem install jekyll bundler`) "
            "or set site.command in stheno.yaml."
        )
    command[0] = binary
    command.extend(config.site.args)
    if watch:
        command.append("--watch")
    return command


def site_environment(
    config: PipelineConfig, base: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Return the subprocess environment for the configured profile.

    The production variables are only added when ``config.production`` is
    set; the parent environment is never mutated.
    """
    env = dict(os.environ if base is None else base)
    if config.production:
        env.update(config.site.production_env)
    return env


def run_streaming(
    command: Sequence[str],
    cwd: Path,
    env: Mapping[str, str],
    stop_event: threading.Event | None = None,
    poll_interval: float = 0.1,
) -> int | None:
    """Run a command with inherited stdio until it exits.

    Args:
        command: Argument list.
        cwd: Working directory.
        env: Environment for the child.
        stop_event: When set, the child is terminated.
        poll_interval: Seconds between stop checks.

    Returns:
        The child's exit code, or None if it was stopped.

    Raises:
        SiteBuildError: If the process cannot be started.
    """
    try:
        proc = subprocess.Popen(list(command), cwd=str(cwd), env=dict(env))
    except OSError as exc:
        raise SiteBuildError(f"Failed to start {command[0]}: {exc}") from exc

    while True:
        returncode = proc.poll()
        if returncode is not None:
            return returncode
        if stop_event is not None and stop_event.wait(poll_interval):
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            return None
        if stop_event is None:
            return proc.wait()


def build_task(context) -> int:
    """Run a one-shot site build."""
    config = context.config
    command = site_command(config)
    profile = "production" if config.production else "development"
    context.log(f"Running {' '.join(command)} ({profile})")
    returncode = run_streaming(
        command, config.project_root, site_environment(config), context.stop_event
    )
    if returncode is None:
        raise SiteBuildError("Site build interrupted")
    if returncode != 0:
        raise SiteBuildError(f"Site build failed with exit code {returncode}")
    return returncode


def watch_task(context) -> None:
    """Keep the generator rebuilding on source changes until the run stops."""
    config = context.config
    command = site_command(config, watch=True)
    context.log(f"Watching with {' '.join(command)}")
    returncode = run_streaming(
        command, config.project_root, site_environment(config), context.stop_event
    )
    if returncode not in (None, 0):
        raise SiteBuildError(f"Site watcher exited with code {returncode}")
