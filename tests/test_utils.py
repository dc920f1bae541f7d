import shutil

from stheno.executable_utils import find_executable
from stheno.reporting import ConsoleReporter, _format_duration


def test_find_executable_prefers_path(monkeypatch, tmp_path):
    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/bin/{name}")
    assert find_executable("jekyll", tmp_path) == "/usr/bin/jekyll"


def test_find_executable_checks_binstubs_then_node_modules(monkeypatch, tmp_path):
    monkeypatch.setattr(shutil, "which", lambda name: None)
    assert find_executable("jekyll", tmp_path) is None
    assert find_executable("jekyll") is None

    node_bin = tmp_path / "node_modules" / ".bin" / "jekyll"
    node_bin.parent.mkdir(parents=True)
    node_bin.write_text("#!/bin/sh\n", encoding="utf-8")
    assert find_executable("jekyll", tmp_path) == str(node_bin)

    binstub = tmp_path / "bin" / "jekyll"
    binstub.parent.mkdir()
    binstub.write_text("#!/usr/bin/env ruby\n", encoding="utf-8")
    assert find_executable("jekyll", tmp_path) == str(binstub)


def test_format_duration():
    assert _format_duration(0.25) == "250 ms"
    assert _format_duration(1.5) == "1.50 s"


def test_console_reporter_lines(capsys):
    reporter = ConsoleReporter()
    reporter.task_started("site-build")
    reporter.task_finished("site-build", 2.0)
    reporter.task_failed("deploy", RuntimeError("denied"), 0.1)
    reporter.task_skipped("deploy", "minify-js")
    reporter.message("serve", "Live reload on ws://localhost:3001")
    out = capsys.readouterr().out.splitlines()
    assert out[0].endswith("Starting 'site-build'...")
    assert out[1].endswith("Finished 'site-build' after 2.00 s")
    assert out[2].endswith("'deploy' errored after 100 ms")
    assert out[3].endswith("'deploy' not run: 'minify-js' failed")
    assert out[4].endswith("serve: Live reload on ws://localhost:3001")
    assert out[0].startswith("[")
