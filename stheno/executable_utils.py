"""Executable discovery utilities for Stheno.

Tasks shell out to Jekyll, git and optionally terser. They are looked up on
the system PATH first, then in the project's bundler binstubs (``bin/``) and
local ``node_modules/.bin``.

Functions:
    find_executable: Locate an executable in PATH or project-local tool dirs.
"""

from __future__ import annotations

import shutil
from pathlib import Path

LOCAL_BIN_DIRS = ("bin", "node_modules/.bin")


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or project-local tool directories.

    Args:
        name: Name of the executable to find (e.g., 'jekyll', 'terser').
        project_root: Optional project root to search for binstubs and
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('git')
        '/usr/bin/git'

        >>> find_executable('jekyll', Path('/my/blog'))  # bundler binstub
        '/my/blog/bin/jekyll'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        for folder in LOCAL_BIN_DIRS:
            local = project_root / folder / name
            if local.exists():
                return str(local)

    return None
