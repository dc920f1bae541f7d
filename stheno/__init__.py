"""Stheno asset pipeline for Jekyll sites.

This package drives the build around an external static site generator.
It wires small file-transform tasks (SVG sprite injection, site build,
JavaScript bundling, live-reload dev server, deploy) into an explicit
task graph and runs them with a dependency-aware scheduler.

The main entry point is the CLI module, which exposes one command per
build target (``build``, ``build:prod``, ``serve``, ``deploy``...).

It also ships the ``custom_tag`` template extension for Jinja2.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
