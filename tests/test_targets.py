import threading

import pytest

from stheno import targets
from stheno.config import load_config
from stheno.graph import Task, TaskGraph, TaskState
from stheno.scheduler import run_graph
from stheno.targets import TARGETS, build_graph, get_target, resolve_config

EXPECTED_TARGETS = [
    "sprite-build",
    "svgstore",
    "build",
    "build:watch",
    "build:prod",
    "build:prod:watch",
    "minify-js",
    "serve",
    "serve:prod",
    "deploy",
    "default",
]


def test_every_cli_target_is_defined():
    assert list(TARGETS) == EXPECTED_TARGETS


@pytest.mark.parametrize("name", EXPECTED_TARGETS)
def test_every_target_graph_is_valid(name):
    graph = build_graph(name)
    assert len(graph) >= 1


@pytest.mark.parametrize(
    "name, order",
    [
        ("svgstore", ["sprite-build"]),
        ("build", ["sprite-build", "site-build"]),
        ("build:prod", ["sprite-build", "site-build", "minify-js"]),
        ("minify-js", ["sprite-build", "site-build", "minify-js"]),
        ("deploy", ["sprite-build", "site-build", "minify-js", "deploy"]),
        ("serve", ["serve"]),
    ],
)
def test_linear_target_chains(name, order):
    assert build_graph(name).topological_order() == order


def test_serving_targets_wait_for_initial_build():
    default = build_graph("default")
    assert default.task("serve").depends_on == ("site-build",)
    assert default.task("site-watch").depends_on == ("site-build",)
    prod = build_graph("serve:prod")
    assert prod.task("serve").depends_on == ("minify-js",)
    assert prod.task("site-watch").depends_on == ("minify-js",)


@pytest.mark.parametrize("name", ["build:prod:watch", "serve:prod"])
def test_production_watch_targets_rebundle(name):
    graph = build_graph(name)
    assert graph.task("minify-watch").depends_on == ("minify-js",)
    assert graph.task("minify-watch").action is targets.watch_bundle_task


def test_development_watch_targets_do_not_rebundle():
    for name in ("build:watch", "default"):
        assert "minify-watch" not in build_graph(name).names


def test_unknown_target():
    with pytest.raises(KeyError, match="Unknown target 'nope'"):
        get_target("nope")


def test_resolve_config_profiles(tmp_path):
    config = load_config(tmp_path)
    assert resolve_config("build", config, {}).production is False
    assert resolve_config("build", config, {"JEKYLL_ENV": "production"}).production is True
    assert resolve_config("build:prod", config, {}).production is True
    assert resolve_config("deploy", config, {"JEKYLL_ENV": "development"}).production is True


def _replace_actions(graph: TaskGraph, actions) -> TaskGraph:
    return TaskGraph(
        Task(task.name, actions.get(task.name, task.action), task.depends_on, task.description)
        for task in graph
    )


def test_deploy_never_pushes_when_site_build_fails(monkeypatch, tmp_path):
    calls = []
    lock = threading.Lock()

    def record(name, fail=False):
        def action(context):
            with lock:
                calls.append(name)
            if fail:
                raise RuntimeError(f"{name} failed")

        return action

    pushed = []
    monkeypatch.setattr(
        targets, "deploy_task", lambda context: pushed.append(context)
    )
    monkeypatch.setattr("stheno.deploy.subprocess.run", lambda *a, **k: pushed.append(a))

    graph = _replace_actions(
        build_graph("deploy"),
        {
            "sprite-build": record("sprite-build"),
            "site-build": record("site-build", fail=True),
            "minify-js": record("minify-js"),
        },
    )
    config = resolve_config("deploy", load_config(tmp_path), {})
    result = run_graph(graph, config)

    assert calls == ["sprite-build", "site-build"]
    assert pushed == []
    assert result["deploy"].state is TaskState.FAILED
    assert result["deploy"].skipped_because == "site-build"
    assert result["minify-js"].skipped_because == "site-build"
    assert result.first_failure.name == "site-build"


def test_build_target_runs_real_sprite_task(monkeypatch, tmp_path):
    icons = tmp_path / "_svg"
    icons.mkdir()
    (icons / "rss.svg").write_text(
        '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 8 8"><path d="M0 0"/></svg>',
        encoding="utf-8",
    )
    seen = {}

    def fake_site_build(context):
        include = context.config.sprites.include
        seen["include"] = include.read_text(encoding="utf-8")

    graph = _replace_actions(build_graph("build"), {"site-build": fake_site_build})
    result = run_graph(graph, resolve_config("build", load_config(tmp_path), {}))

    assert result.succeeded
    assert '<symbol id="rss"' in seen["include"]
