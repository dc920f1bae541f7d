"""Build targets for Stheno.

Each target names a task graph. The graphs are composed from the same task
definitions, so ``deploy`` runs exactly the production chain of
``build:prod`` before publishing, and ``default`` serves only after the
initial site build has finished.
In the production watch targets a script watcher re-bundles after every
regeneration, since each rebuild removes the bundle again.

Key objects:
- TARGETS: Target name to ``Target``.
- build_graph: Task graph for a target name.
- resolve_config: Configuration with the target's build profile applied.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

from .bundle import bundle_task, watch_bundle_task
from .config import PipelineConfig, production_from_env
from .deploy import deploy_task
from .graph import Task, TaskGraph
from .server import serve_task
from .site import build_task, watch_task
from .sprites import sprite_task

SPRITE_BUILD = "sprite-build"
SITE_BUILD = "site-build"
SITE_WATCH = "site-watch"
MINIFY_JS = "minify-js"
MINIFY_WATCH = "minify-watch"
SERVE = "serve"
DEPLOY = "deploy"


def _sprite() -> Task:
    return Task(SPRITE_BUILD, sprite_task, description="Inject the SVG sprite sheet")


def _site() -> Task:
    return Task(SITE_BUILD, build_task, (SPRITE_BUILD,), "Run the site generator once")


def _watch(after: str = SITE_BUILD) -> Task:
    return Task(SITE_WATCH, watch_task, (after,), "Rebuild the site on source changes")


def _minify() -> Task:
    return Task(MINIFY_JS, bundle_task, (SITE_BUILD,), "Concatenate and minify scripts")


def _minify_watch() -> Task:
    return Task(
        MINIFY_WATCH, watch_bundle_task, (MINIFY_JS,), "Re-bundle scripts after each rebuild"
    )


def _serve(*after: str) -> Task:
    return Task(SERVE, serve_task, after, "Serve the output with live reload")


def _deploy() -> Task:
    return Task(DEPLOY, deploy_task, (MINIFY_JS,), "Push the output to the hosting branch")


@dataclass(frozen=True)
class Target:
    """A named entry point.

    Attributes:
        name: Name used on the command line.
        description: Help text.
        tasks: Factory returning the target's tasks.
        production: True to force the production profile, None to follow the
            environment.
        serves: Whether the target runs the dev server.
    """

    name: str
    description: str
    tasks: Callable[[], list[Task]]
    production: bool | None = None
    serves: bool = False

    def graph(self) -> TaskGraph:
        return TaskGraph(self.tasks())


_TARGET_LIST = [
    Target(
        "sprite-build",
        "Build the SVG sprite and inject it into the include.",
        lambda: [_sprite()],
    ),
    Target(
        "svgstore",
        "Alias for sprite-build.",
        lambda: [_sprite()],
    ),
    Target(
        "build",
        "Build the site once.",
        lambda: [_sprite(), _site()],
    ),
    Target(
        "build:watch",
        "Build the site, then rebuild on changes.",
        lambda: [_sprite(), _site(), _watch()],
    ),
    Target(
        "build:prod",
        "Production build with minified scripts.",
        lambda: [_sprite(), _site(), _minify()],
        production=True,
    ),
    Target(
        "build:prod:watch",
        "Production build, then rebuild on changes.",
        lambda: [_sprite(), _site(), _minify(), _watch(MINIFY_JS), _minify_watch()],
        production=True,
    ),
    Target(
        "minify-js",
        "Build the site and bundle its scripts.",
        lambda: [_sprite(), _site(), _minify()],
    ),
    Target(
        "serve",
        "Serve the existing output with live reload.",
        lambda: [_serve()],
        serves=True,
    ),
    Target(
        "serve:prod",
        "Production build and watch, served with live reload.",
        lambda: [
            _sprite(),
            _site(),
            _minify(),
            _watch(MINIFY_JS),
            _minify_watch(),
            _serve(MINIFY_JS),
        ],
        production=True,
        serves=True,
    ),
    Target(
        "deploy",
        "Production build pushed to the hosting branch.",
        lambda: [_sprite(), _site(), _minify(), _deploy()],
        production=True,
    ),
    Target(
        "default",
        "Build, watch and serve with live reload.",
        lambda: [_sprite(), _site(), _watch(), _serve(SITE_BUILD)],
        serves=True,
    ),
]

TARGETS: dict[str, Target] = {target.name: target for target in _TARGET_LIST}


def get_target(name: str) -> Target:
    try:
        return TARGETS[name]
    except KeyError:
        known = ", ".join(TARGETS)
        raise KeyError(f"Unknown target {name!r}; expected one of: {known}") from None


def build_graph(name: str) -> TaskGraph:
    """Return the validated task graph for a target."""
    graph = get_target(name).graph()
    graph.validate()
    return graph


def resolve_config(
    name: str, config: PipelineConfig, environ: Mapping[str, str]
) -> PipelineConfig:
    """Apply the target's build profile to ``config``.

    Production targets always build for production; the others follow the
    profile environment variable.
    """
    target = get_target(name)
    production = (
        target.production
        if target.production is not None
        else production_from_env(environ)
    )
    return config.with_profile(production)
