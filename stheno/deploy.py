"""Deployment of the build output to a hosting branch.

The output directory is copied into a scratch git repository, committed as
a single snapshot and force-pushed to the configured branch (``gh-pages`` by
default). Nothing is retried and the output directory is never touched, so
a failed push leaves the local build as it was.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .config import PipelineConfig
from .executable_utils import find_executable
from .graph import TaskError

NOJEKYLL = ".nojekyll"

# Identity used when neither stheno.yaml nor git provides one.
FALLBACK_NAME = "Stheno"
FALLBACK_EMAIL = "stheno@localhost"


class DeployError(TaskError):
    """Raised when the build output cannot be published."""


@dataclass
class DeployResult:
    remote: str
    branch: str
    message: str


def _git(
    git_bin: str, args: list[str], cwd: Path, options: tuple[str, ...] = ()
) -> str:
    result = subprocess.run(
        [git_bin, *options, *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise DeployError(f"git {args[0]} failed: {detail}")
    return result.stdout.strip()


def _git_config(git_bin: str, key: str, cwd: Path) -> str:
    result = subprocess.run(
        [git_bin, "config", "--get", key],
        cwd=str(cwd),
        capture_output=True,
        text=True,
    )
    return result.stdout.strip() if result.returncode == 0 else ""


def commit_identity(git_bin: str, config: PipelineConfig) -> tuple[str, str]:
    """Return the author name and email for the deploy commit.

    Configured values win, then the project's git identity, then a fallback
    so that machines without a git identity (CI) can still deploy.
    """
    deploy_config = config.deploy
    name = deploy_config.name or _git_config(git_bin, "user.name", config.project_root)
    email = deploy_config.email or _git_config(
        git_bin, "user.email", config.project_root
    )
    return name or FALLBACK_NAME, email or FALLBACK_EMAIL


def _looks_like_url(remote: str) -> bool:
    return "://" in remote or remote.startswith("git@") or Path(remote).is_absolute()


def resolve_remote(git_bin: str, config: PipelineConfig) -> str:
    """Return the push URL for the configured remote name or URL."""
    remote = config.deploy.remote
    if _looks_like_url(remote):
        return remote
    return _git(git_bin, ["remote", "get-url", remote], config.project_root)


def commit_message(template: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return template.format(timestamp=now.strftime("%Y-%m-%d %H:%M:%S UTC"))


def deploy(config: PipelineConfig) -> DeployResult:
    """Publish the output directory to the hosting branch.

    Args:
        config: Pipeline configuration.

    Returns:
        DeployResult naming where the snapshot was pushed.

    Raises:
        DeployError: If the output is empty or any git step fails.
    """
    output_dir = config.output_dir
    if not output_dir.is_dir() or not any(output_dir.iterdir()):
        raise DeployError(f"Nothing to deploy: {output_dir} is missing or empty")

    git_bin = find_executable("git", config.project_root)
    if not git_bin:
        raise DeployError("git not found on PATH")

    remote_url = resolve_remote(git_bin, config)
    branch = config.deploy.branch
    message = commit_message(config.deploy.message)
    name, email = commit_identity(git_bin, config)
    identity = ("-c", f"user.name={name}", "-c", f"user.email={email}")

    scratch = Path(tempfile.mkdtemp(prefix="stheno-deploy-"))
    try:
        shutil.copytree(output_dir, scratch, dirs_exist_ok=True)
        if config.deploy.nojekyll:
            (scratch / NOJEKYLL).touch()
        _git(git_bin, ["init", "--quiet"], scratch)
        _git(git_bin, ["checkout", "--quiet", "-b", branch], scratch)
        _git(git_bin, ["add", "--all"], scratch)
        _git(git_bin, ["commit", "--quiet", "-m", message], scratch, identity)
        _git(
            git_bin,
            ["push", "--force", "--quiet", remote_url, f"HEAD:refs/heads/{branch}"],
            scratch,
        )
    finally:
        shutil.rmtree(scratch, ignore_errors=True)
    return DeployResult(remote=remote_url, branch=branch, message=message)


def deploy_task(context) -> DeployResult:
    """Task action for ``deploy``."""
    result = deploy(context.config)
    context.log(f"Pushed {context.config.output_dir.name} to {result.branch}")
    return result
