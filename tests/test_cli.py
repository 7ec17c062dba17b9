"""End-to-end tests for the cowork CLI with fake git and container runtime."""

import pytest
from typer.testing import CliRunner

import cowork.cli as cli_module
from cowork import __version__
from cowork.cli import app
from cowork.errors import ContainerStopFailed
from cowork.settings.models import Multiplexer
from cowork.settings.store import read_config

runner = CliRunner()


@pytest.fixture
def env(monkeypatch, paths, fake_git, fake_runtime, project_root):
    monkeypatch.setattr(cli_module, "_paths", lambda: paths)
    monkeypatch.setattr(cli_module, "_git", lambda: fake_git)
    monkeypatch.setattr(cli_module, "_runtime", lambda: fake_runtime)
    monkeypatch.chdir(project_root)
    paths.user_config.write_text('MULTIPLEXER_PREFERENCE="tmux"\n')
    return paths


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands(env):
    result = runner.invoke(app, ["help"])
    assert result.exit_code == 0
    for command in ("init", "connect", "clean"):
        assert command in result.output


def test_init_then_list(env, project_root):
    result = runner.invoke(app, ["init", "backend", "frontend"])
    assert result.exit_code == 0, result.output
    assert "Session 'backend' created" in result.output

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "backend" in result.output
    assert "frontend" in result.output
    assert result.output.count("stopped") == 2
    assert "Multiplexer preference: tmux" in result.output

    stored = read_config(project_root / ".cowork" / ".cowork.conf")
    assert stored.sessions == ["backend", "frontend"]


def test_init_twice_skips(env, fake_git):
    runner.invoke(app, ["init", "backend"])
    result = runner.invoke(app, ["init", "backend"])
    assert result.exit_code == 0
    assert "already exists" in result.output
    assert len(fake_git.clones) == 1


def test_init_declined_devcontainer_fails(env, fake_git):
    fake_git.devcontainer = None
    result = runner.invoke(app, ["init", "backend"], input="n\n")
    assert result.exit_code == 1
    assert "Cannot proceed without devcontainer.json" in result.output


def test_list_without_sessions(env):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No sessions configured" in result.output


def test_outside_repository(env, fake_git):
    fake_git.root = None
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "Tip:" in result.output


def test_connect_twice_reuses_session(env, fake_runtime, credentials):
    runner.invoke(app, ["init", "backend"])

    first = runner.invoke(app, ["connect", "backend"])
    second = runner.invoke(app, ["connect", "backend"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert len(fake_runtime.ups) == 1
    assert ["tmux", "new-session", "-s", "backend"] in fake_runtime.interactive
    assert fake_runtime.interactive[-1] == ["tmux", "attach-session", "-t", "=backend"]


def test_connect_flag_overrides_preference(env, fake_runtime, credentials):
    runner.invoke(app, ["init", "backend"])
    result = runner.invoke(app, ["connect", "backend", "--none"])
    assert result.exit_code == 0
    assert fake_runtime.interactive == [["/bin/bash"]]


def test_connect_rejects_conflicting_flags(env, credentials):
    runner.invoke(app, ["init", "backend"])
    result = runner.invoke(app, ["connect", "backend", "--tmux", "--zellij"])
    assert result.exit_code == 1
    assert "Use only one of" in result.output


def test_connect_unknown_session(env, fake_runtime):
    result = runner.invoke(app, ["connect", "ghost"])
    assert result.exit_code == 1
    assert "Session 'ghost' not found" in result.output
    assert "cowork init ghost" in result.output
    assert fake_runtime.ups == []


def test_stop(env, fake_runtime, credentials):
    runner.invoke(app, ["init", "backend"])
    runner.invoke(app, ["connect", "backend"])

    result = runner.invoke(app, ["stop"])
    assert result.exit_code == 0
    assert "Stopped container for session: backend" in result.output
    assert fake_runtime.running == {}


def test_clean_requires_exact_yes(env, paths):
    runner.invoke(app, ["init", "backend"])

    result = runner.invoke(app, ["clean"], input="y\n")
    assert result.exit_code == 0
    assert "Clean cancelled" in result.output
    assert (paths.sessions_dir / "my-app-backend").exists()

    result = runner.invoke(app, ["clean"], input="yes\n")
    assert result.exit_code == 0
    assert "All sessions cleaned" in result.output
    assert not (paths.sessions_dir / "my-app-backend").exists()


def test_status(env, credentials):
    runner.invoke(app, ["init", "backend"])
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "my-app" in result.output
    assert "Configured" in result.output
    assert "0.60.0" in result.output


def test_first_run_asks_once(env, paths):
    paths.user_config.write_text("")

    result = runner.invoke(app, ["list"], input="2\n")
    assert result.exit_code == 0
    assert read_config(paths.user_config).multiplexer_preference is Multiplexer.ZELLIJ

    result = runner.invoke(app, ["list"])
    assert "Which terminal multiplexer" not in result.output


def _failing_stop(container_id):
    raise ContainerStopFailed(f"docker stop {container_id} failed: exit 1")


def test_stop_failure_is_reported(env, fake_runtime, credentials, monkeypatch):
    runner.invoke(app, ["init", "backend"])
    runner.invoke(app, ["connect", "backend"])
    monkeypatch.setattr(fake_runtime, "stop", _failing_stop)

    result = runner.invoke(app, ["stop"])

    assert result.exit_code == 1
    assert not isinstance(result.exception, ContainerStopFailed)
    assert "Error:" in result.output
    assert "docker stop container-1 failed" in result.output
    assert "Tip:" in result.output


def test_clean_stop_failure_keeps_sessions(env, fake_runtime, credentials, paths, monkeypatch):
    runner.invoke(app, ["init", "backend"])
    runner.invoke(app, ["connect", "backend"])
    monkeypatch.setattr(fake_runtime, "stop", _failing_stop)

    result = runner.invoke(app, ["clean"], input="yes\n")

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert (paths.sessions_dir / "my-app-backend").exists()
