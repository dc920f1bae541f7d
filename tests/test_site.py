import threading

import pytest

from stheno import site
from stheno.config import load_config
from stheno.scheduler import NullReporter, TaskContext
from stheno.site import (
    SiteBuildError,
    build_task,
    run_streaming,
    site_command,
    site_environment,
    watch_task,
)


class FakePopen:
    """Stand-in for subprocess.Popen that never spawns anything."""

    instances = []

    def __init__(self, cmd, cwd=None, env=None, returncode=0, runs_forever=False):
        self.cmd = cmd
        self.cwd = cwd
        self.env = env
        self._returncode = returncode
        self.runs_forever = runs_forever
        self.returncode = None
        self.terminated = False
        FakePopen.instances.append(self)

    def poll(self):
        if self.terminated or not self.runs_forever:
            self.returncode = -15 if self.terminated else self._returncode
        return self.returncode

    def wait(self, timeout=None):
        return self.poll()

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.terminated = True


def install_fake_popen(monkeypatch, **behaviour):
    FakePopen.instances = []

    def factory(cmd, cwd=None, env=None):
        return FakePopen(cmd, cwd=cwd, env=env, **behaviour)

    monkeypatch.setattr(site.subprocess, "Popen", factory)


def install_fake_jekyll(monkeypatch, path="/usr/local/bin/jekyll"):
    monkeypatch.setattr(
        site, "find_executable", lambda name, root=None: path if name == "jekyll" else None
    )


def make_context(config, stop_event=None):
    return TaskContext(
        name="site-build",
        config=config,
        stop_event=stop_event or threading.Event(),
        reporter=NullReporter(),
    )


def test_site_command_resolves_binary_and_args(monkeypatch, tmp_path):
    (tmp_path / "stheno.yaml").write_text(
        "site:\n  args: [--config, '_config.yml,_config.dev.yml']\n", encoding="utf-8"
    )
    install_fake_jekyll(monkeypatch)
    config = load_config(tmp_path)
    assert site_command(config) == [
        "/usr/local/bin/jekyll",
        "build",
        "--config",
        "_config.yml,_config.dev.yml",
    ]
    assert site_command(config, watch=True)[-1] == "--watch"


def test_site_command_missing_generator(monkeypatch, tmp_path):
    monkeypatch.setattr(site, "find_executable", lambda name, root=None: None)
    with pytest.raises(SiteBuildError, match="jekyll not found"):
        site_command(load_config(tmp_path))


def test_site_environment_follows_profile(tmp_path):
    config = load_config(tmp_path)
    base = {"PATH": "/usr/bin"}
    assert site_environment(config, base) == {"PATH": "/usr/bin"}
    prod = site_environment(config.with_profile(True), base)
    assert prod == {"PATH": "/usr/bin", "JEKYLL_ENV": "production"}
    assert base == {"PATH": "/usr/bin"}


def test_build_task_streams_and_succeeds(monkeypatch, tmp_path):
    install_fake_jekyll(monkeypatch)
    install_fake_popen(monkeypatch, returncode=0)
    config = load_config(tmp_path, production=True)

    assert build_task(make_context(config)) == 0
    proc = FakePopen.instances[0]
    assert proc.cmd == ["/usr/local/bin/jekyll", "build"]
    assert proc.cwd == str(tmp_path)
    assert proc.env["JEKYLL_ENV"] == "production"


def test_build_task_development_env_has_no_production_flag(monkeypatch, tmp_path):
    install_fake_jekyll(monkeypatch)
    install_fake_popen(monkeypatch, returncode=0)
    monkeypatch.delenv("JEKYLL_ENV", raising=False)

    build_task(make_context(load_config(tmp_path)))
    assert "JEKYLL_ENV" not in FakePopen.instances[0].env


def test_build_task_nonzero_exit_fails(monkeypatch, tmp_path):
    install_fake_jekyll(monkeypatch)
    install_fake_popen(monkeypatch, returncode=1)
    with pytest.raises(SiteBuildError, match="exit code 1"):
        build_task(make_context(load_config(tmp_path)))


def test_run_streaming_start_failure(monkeypatch, tmp_path):
    def boom(cmd, cwd=None, env=None):
        raise FileNotFoundError("no such file")

    monkeypatch.setattr(site.subprocess, "Popen", boom)
    with pytest.raises(SiteBuildError, match="Failed to start jekyll"):
        run_streaming(["jekyll", "build"], tmp_path, {})


def test_run_streaming_stops_on_event(monkeypatch, tmp_path):
    install_fake_popen(monkeypatch, runs_forever=True)
    stop = threading.Event()
    stop.set()
    assert run_streaming(["jekyll"], tmp_path, {}, stop, poll_interval=0.01) is None
    assert FakePopen.instances[0].terminated


def test_watch_task_returns_when_stopped(monkeypatch, tmp_path):
    install_fake_jekyll(monkeypatch)
    install_fake_popen(monkeypatch, runs_forever=True)
    stop = threading.Event()
    timer = threading.Timer(0.05, stop.set)
    timer.start()
    try:
        watch_task(make_context(load_config(tmp_path), stop))
    finally:
        timer.cancel()
    proc = FakePopen.instances[0]
    assert proc.cmd[-1] == "--watch"
    assert proc.terminated


def test_watch_task_fails_when_generator_dies(monkeypatch, tmp_path):
    install_fake_jekyll(monkeypatch)
    install_fake_popen(monkeypatch, returncode=2)
    with pytest.raises(SiteBuildError, match="exited with code 2"):
        watch_task(make_context(load_config(tmp_path)))


def test_run_streaming_without_stop_event(monkeypatch, tmp_path):
    install_fake_popen(monkeypatch, returncode=3)
    assert run_streaming(["jekyll"], tmp_path, {}) == 3
