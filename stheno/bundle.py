"""JavaScript bundling for Stheno.

Jekyll copies the vendored libraries and application scripts into the
output directory as-is. This task concatenates them in their configured
order (vendor libraries first, then application code), minifies the result
and removes what the shipped pages no longer load.

The order of ``js.vendor`` and ``js.app`` is significant and is not
validated: a library placed after the code that uses it breaks the bundle
at runtime.

In watch mode the site generator rewrites the output directory on every
change and drops files it did not produce itself, the bundle included.
``watch_bundle_task`` re-bundles once the generator has rewritten the
configured scripts.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from rjsmin import jsmin
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import PipelineConfig
from .executable_utils import find_executable
from .graph import TaskError

INTERMEDIATE_NAME = "bundle.js"

# Quiet period after the last rewritten script before re-bundling.
REBUNDLE_DELAY = 0.3


class BundleError(TaskError):
    """Raised when scripts cannot be concatenated or minified."""


@dataclass
class BundleResult:
    """Result of a bundling run.

    Attributes:
        output: Minified bundle path, or None when nothing was configured.
        sources: Concatenated files in order.
        removed: Files deleted after minification.
    """

    output: Path | None
    sources: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)


def concatenate(sources: Iterable[Path], dest: Path) -> int:
    """Concatenate files byte for byte into ``dest``.

    Returns:
        Number of bytes written.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with open(dest, "wb") as f_out:
        for source in sources:
            chunk = source.read_bytes()
            f_out.write(chunk)
            written += len(chunk)
    return written


def minify(source: Path, dest: Path, minifier: str, project_root: Path) -> None:
    """Minify a JavaScript file with rjsmin or terser.

    Raises:
        BundleError: If terser is requested but missing or fails.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    if minifier == "terser":
        terser = find_executable("terser", project_root)
        if not terser:
            raise BundleError(
                "terser not found; install it with `npm install -D terser` "
                "or set js.minifier to rjsmin."
            )
        result = subprocess.run(
            [terser, str(source), "-c", "-m", "-o", str(dest)],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise BundleError(f"terser failed: {result.stderr.strip()}")
        return

    with open(source, encoding="utf-8") as f_in:
        minified = jsmin(f_in.read())
    with open(dest, "w", encoding="utf-8") as f_out:
        f_out.write(minified)


def bundle_js(config: PipelineConfig) -> BundleResult:
    """Concatenate, minify and clean up the configured scripts.

    Args:
        config: Pipeline configuration.

    Returns:
        BundleResult describing what was produced and removed.

    Raises:
        BundleError: If a configured source is missing or minification fails.
    """
    js = config.js
    output_dir = config.output_dir
    vendor = [output_dir / name for name in js.vendor]
    sources = vendor + [output_dir / name for name in js.app]
    if not sources:
        return BundleResult(output=None)

    missing = [str(path) for path in sources if not path.is_file()]
    if missing:
        raise BundleError(f"Missing script(s): {', '.join(missing)}")

    intermediate = js.tmp_dir / INTERMEDIATE_NAME
    output = output_dir / js.output
    try:
        concatenate(sources, intermediate)
        minify(intermediate, output, js.minifier, config.project_root)
    finally:
        shutil.rmtree(js.tmp_dir, ignore_errors=True)

    removed = [intermediate]
    for path in vendor:
        if path != output:
            path.unlink(missing_ok=True)
            removed.append(path)
    return BundleResult(output=output, sources=sources, removed=removed)


def bundle_task(context) -> BundleResult:
    """Task action for ``minify-js``."""
    result = bundle_js(context.config)
    if result.output is None:
        context.log("No scripts configured under js.vendor/js.app; nothing to bundle")
    else:
        rel = result.output.relative_to(context.config.output_dir)
        context.log(f"Bundled {len(result.sources)} scripts into {rel}")
    return result


class _ScriptChangeHandler(FileSystemEventHandler):
    """Calls ``rebundle`` once the bundled sources stop changing."""

    def __init__(self, sources: Iterable[Path], rebundle, delay: float = REBUNDLE_DELAY):
        super().__init__()
        self.sources = {os.path.normpath(str(path)) for path in sources}
        self.rebundle = rebundle
        self.delay = delay
        self._lock = threading.Lock()
        self._pending: threading.Timer | None = None

    def on_any_event(self, event):
        if event.is_directory:
            return
        if event.event_type == "moved":
            path = event.dest_path
        elif event.event_type in ("created", "modified", "closed"):
            path = event.src_path
        else:
            return
        if os.path.normpath(path) in self.sources:
            self.schedule()

    def schedule(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            timer = threading.Timer(self.delay, self._flush)
            timer.daemon = True
            self._pending = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    def _flush(self) -> None:
        with self._lock:
            if self._pending is not threading.current_thread():
                return
            self._pending = None
        self.rebundle()


def watch_bundle_task(context) -> None:
    """Task action for ``minify-watch``: re-bundles until the pipeline is stopped.

    A failed re-bundle is reported and the watch carries on, like the site
    generator's own watch mode after a broken rebuild.
    """
    config = context.config
    output_dir = config.output_dir
    sources = [output_dir / name for name in (*config.js.vendor, *config.js.app)]
    if not sources:
        context.log("No scripts configured under js.vendor/js.app; nothing to watch")
        return

    def rebundle() -> None:
        try:
            result = bundle_js(config)
        except BundleError as exc:
            context.log(f"Re-bundle failed: {exc}")
            return
        rel = result.output.relative_to(output_dir)
        context.log(f"Re-bundled {len(result.sources)} scripts into {rel}")

    handler = _ScriptChangeHandler(sources, rebundle)
    output_dir.mkdir(parents=True, exist_ok=True)
    observer = Observer()
    observer.schedule(handler, str(output_dir), recursive=True)
    observer.start()
    try:
        context.stop_event.wait()
    finally:
        handler.cancel()
        observer.stop()
        observer.join()
