"""Pipeline configuration for Stheno.

Configuration lives in ``stheno.yaml`` at the project root. Values are merged
over ``DEFAULT_CONFIG`` and frozen into a ``PipelineConfig`` that every task
receives explicitly, so no task reads the process environment or globals to
decide what to do.

Key functions:
- load_config: Load and validate ``stheno.yaml``.
- production_from_env: Resolve the build profile from the environment.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "stheno.yaml"

# Environment variable Jekyll itself uses to select its production config.
PROFILE_ENV_VAR = "JEKYLL_ENV"
PRODUCTION = "production"

DEFAULT_CONFIG: dict[str, Any] = {
    "output_dir": "_site",
    "port": 3000,
    "ws_port": None,
    "sprites": {
        "source_dir": "_svg",
        "include": "_includes/svg-sprite.html",
    },
    "site": {
        "command": ["jekyll", "build"],
        "args": [],
        "production_env": {PROFILE_ENV_VAR: PRODUCTION},
    },
    "js": {
        "vendor": [],
        "app": [],
        "output": "js/app.min.js",
        "tmp_dir": ".tmp",
        "minifier": "rjsmin",
    },
    "deploy": {
        "remote": "origin",
        "branch": "gh-pages",
        "message": "Deploy {timestamp}",
        "nojekyll": True,
        "name": None,
        "email": None,
    },
    "serve": {
        "debounce": 0.1,
    },
}

MINIFIERS = ("rjsmin", "terser")


class ConfigError(Exception):
    """Raised when ``stheno.yaml`` holds a value of the wrong shape."""


@dataclass(frozen=True)
class SpriteConfig:
    source_dir: Path
    include: Path


@dataclass(frozen=True)
class SiteConfig:
    command: tuple[str, ...]
    args: tuple[str, ...] = ()
    production_env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BundleConfig:
    """Script bundling settings.

    Attributes:
        vendor: Vendored libraries, relative to the output directory, in load order.
        app: Application scripts appended after the vendor files.
        output: Minified bundle path, relative to the output directory.
        tmp_dir: Scratch directory for the unminified bundle.
        minifier: ``rjsmin`` or ``terser``.
    """

    vendor: tuple[str, ...]
    app: tuple[str, ...]
    output: str
    tmp_dir: Path
    minifier: str = "rjsmin"


@dataclass(frozen=True)
class DeployConfig:
    """Publishing settings.

    Attributes:
        remote: Remote name or URL to push to.
        branch: Hosting branch that receives the snapshot.
        message: Commit message template; ``{timestamp}`` is filled in.
        nojekyll: Add a ``.nojekyll`` marker to the snapshot.
        name: Commit author name; the local git identity when unset.
        email: Commit author email; the local git identity when unset.
    """

    remote: str
    branch: str
    message: str
    nojekyll: bool = True
    name: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class ServeConfig:
    debounce: float = 0.1


@dataclass(frozen=True)
class PipelineConfig:
    """Resolved configuration for one pipeline run.

    Attributes:
        project_root: Directory holding the Jekyll site and ``stheno.yaml``.
        output_dir: Build output directory (Jekyll destination).
        production: Whether the production profile is active.
        port: HTTP port for the dev server.
        ws_port: Websocket port for live reload.
    """

    project_root: Path
    output_dir: Path
    production: bool
    port: int
    ws_port: int
    sprites: SpriteConfig
    site: SiteConfig
    js: BundleConfig
    deploy: DeployConfig
    serve: ServeConfig

    def with_profile(self, production: bool) -> PipelineConfig:
        """Return a copy of this configuration for another build profile."""
        return replace(self, production=production)

    def with_ports(
        self, port: int | None = None, ws_port: int | None = None
    ) -> PipelineConfig:
        """Return a copy with dev server ports overridden.

        An explicit HTTP port without a websocket port moves the websocket
        server to the next port up.
        """
        if port is None and ws_port is None:
            return self
        http_port = port if port is not None else self.port
        if ws_port is None:
            ws_port = http_port + 1 if port is not None else self.ws_port
        return replace(self, port=http_port, ws_port=ws_port)


def production_from_env(environ: Mapping[str, str]) -> bool:
    """Return True when the environment selects the production profile."""
    return environ.get(PROFILE_ENV_VAR, "").strip().lower() == PRODUCTION


def load_config(project_root: Path, production: bool = False) -> PipelineConfig:
    """Load ``stheno.yaml`` from the project root.

    Args:
        project_root: Root directory of the project.
        production: Whether to resolve the production profile.

    Returns:
        Frozen configuration with defaults applied.

    Raises:
        ConfigError: If the file is not a mapping or a known key holds a value
            of the wrong type.
    """
    raw = copy.deepcopy(DEFAULT_CONFIG)
    config_path = project_root / CONFIG_FILENAME
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"{config_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")
        _deep_update(raw, loaded)
    return _resolve(project_root, raw, production)


def _deep_update(base: dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value


def _resolve(project_root: Path, raw: dict[str, Any], production: bool) -> PipelineConfig:
    port = _as_int(raw["port"], "port")
    ws_port = port + 1 if raw["ws_port"] is None else _as_int(raw["ws_port"], "ws_port")

    sprites = _section(raw, "sprites")
    site = _section(raw, "site")
    js = _section(raw, "js")
    deploy = _section(raw, "deploy")
    serve = _section(raw, "serve")

    command = _as_str_list(site["command"], "site.command")
    if not command:
        raise ConfigError("site.command must not be empty")
    production_env = site["production_env"] or {}
    if not isinstance(production_env, Mapping):
        raise ConfigError("site.production_env must be a mapping")

    minifier = str(js["minifier"])
    if minifier not in MINIFIERS:
        raise ConfigError(
            f"js.minifier must be one of {', '.join(MINIFIERS)}, got {minifier!r}"
        )

    try:
        debounce = float(serve["debounce"])
    except (TypeError, ValueError):
        raise ConfigError("serve.debounce must be a number") from None
    if debounce < 0:
        raise ConfigError("serve.debounce must not be negative")

    return PipelineConfig(
        project_root=project_root,
        output_dir=project_root / str(raw["output_dir"]),
        production=production,
        port=port,
        ws_port=ws_port,
        sprites=SpriteConfig(
            source_dir=project_root / str(sprites["source_dir"]),
            include=project_root / str(sprites["include"]),
        ),
        site=SiteConfig(
            command=tuple(command),
            args=tuple(_as_str_list(site["args"], "site.args")),
            production_env={str(k): str(v) for k, v in production_env.items()},
        ),
        js=BundleConfig(
            vendor=tuple(_as_str_list(js["vendor"], "js.vendor")),
            app=tuple(_as_str_list(js["app"], "js.app")),
            output=str(js["output"]),
            tmp_dir=project_root / str(js["tmp_dir"]),
            minifier=minifier,
        ),
        deploy=DeployConfig(
            remote=str(deploy["remote"]),
            branch=str(deploy["branch"]),
            message=str(deploy["message"]),
            nojekyll=bool(deploy["nojekyll"]),
            name=_optional_str(deploy["name"]),
            email=_optional_str(deploy["email"]),
        ),
        serve=ServeConfig(debounce=debounce),
    )


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer") from None


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list of strings")
    return [str(item) for item in value]


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
