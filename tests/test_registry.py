"""Tests for project identity and the session registry."""

import pytest

from cowork.errors import InvalidSessionName, MissingSpecification, NoRemote, NotARepository
from cowork.sessions.models import (
    ProjectIdentity,
    SessionStatus,
    is_valid_session_name,
    project_hash,
    sanitize_project_name,
)
from cowork.sessions.registry import SessionRegistry, resolve_identity
from cowork.settings.models import CoworkConfig
from cowork.settings.store import read_config


def _noop(directory):
    return None


@pytest.fixture
def identity(project_root):
    return ProjectIdentity.from_root(project_root, "git@github.com:acme/My_App.git")


@pytest.fixture
def registry(paths, identity, fake_git, fake_runtime):
    return SessionRegistry(paths, identity, fake_git, fake_runtime)


class TestIdentity:
    @pytest.mark.parametrize(
        "name,slug",
        [
            ("My_App", "my-app"),
            ("--Weird Name!!", "weird-name"),
            ("api.v2", "api-v2"),
            ("already-ok", "already-ok"),
        ],
    )
    def test_sanitize(self, name, slug):
        assert sanitize_project_name(name) == slug

    def test_hash_is_deterministic(self, tmp_path):
        assert project_hash(tmp_path) == project_hash(tmp_path)
        assert len(project_hash(tmp_path)) == 8
        assert project_hash(tmp_path / "a") != project_hash(tmp_path / "b")

    def test_resolve_identity(self, fake_git, project_root):
        identity = resolve_identity(project_root, fake_git)
        assert identity.name == "My_App"
        assert identity.slug == "my-app"
        assert identity.config_path == project_root / ".cowork" / ".cowork.conf"

    def test_not_a_repository(self, fake_git, tmp_path):
        fake_git.root = None
        with pytest.raises(NotARepository):
            resolve_identity(tmp_path, fake_git)

    def test_no_remote(self, fake_git, project_root):
        fake_git.origin = None
        with pytest.raises(NoRemote):
            resolve_identity(project_root, fake_git)

    @pytest.mark.parametrize("name", ["backend", "bugfix-auth", "v1.2", "a_b"])
    def test_valid_names(self, name):
        assert is_valid_session_name(name)

    @pytest.mark.parametrize("name", ["", "-rf", "../escape", "a b", "x.lock", "a/b"])
    def test_invalid_names(self, name):
        assert not is_valid_session_name(name)


class TestInitSessions:
    def test_creates_directories_and_branches(self, registry, paths, fake_git):
        report, config = registry.init_sessions(["backend", "frontend"], CoworkConfig(), _noop)

        assert report.created == ["backend", "frontend"]
        for name in ("backend", "frontend"):
            directory = paths.sessions_dir / f"my-app-{name}"
            assert directory.is_dir()
            assert fake_git.branches[directory] == name
        assert config.sessions == ["backend", "frontend"]

    def test_persists_to_project_config(self, registry, identity):
        registry.init_sessions(["backend"], CoworkConfig(), _noop)
        assert read_config(identity.config_path).sessions == ["backend"]

    def test_second_init_is_a_skip(self, registry, paths, fake_git, identity):
        _, config = registry.init_sessions(["backend"], CoworkConfig(), _noop)
        report, config = registry.init_sessions(["backend"], config, _noop)

        assert report.skipped == ["backend"]
        assert report.ok
        assert len(fake_git.clones) == 1
        assert list(paths.sessions_dir.iterdir()) == [paths.sessions_dir / "my-app-backend"]
        assert read_config(identity.config_path).sessions == ["backend"]

    def test_duplicates_keep_first_occurrence(self, registry, identity):
        _, config = registry.init_sessions(["a", "b"], CoworkConfig(), _noop)
        report, config = registry.init_sessions(["c", "a", "c", "d"], config, _noop)

        assert report.created == ["c", "d"]
        assert report.skipped == ["a", "c"]
        assert read_config(identity.config_path).sessions == ["a", "b", "c", "d"]

    def test_environment_hook_runs_after_branch(self, registry, fake_git):
        seen = []
        registry.init_sessions(["x"], CoworkConfig(), lambda d: seen.append(fake_git.branches[d]))
        assert seen == ["x"]

    def test_failure_does_not_stop_later_names(self, registry, identity):
        def hook(directory):
            if directory.name.endswith("-bad"):
                raise MissingSpecification("Cannot proceed without devcontainer.json")

        report, config = registry.init_sessions(["bad", "good"], CoworkConfig(), hook)

        assert list(report.failed) == ["bad"]
        assert report.failed["bad"].startswith("Cannot proceed without devcontainer.json")
        assert "my-app-bad" in report.failed["bad"]
        assert report.created == ["good"]
        assert not report.ok
        assert read_config(identity.config_path).sessions == ["good"]

    def test_leftover_directory_is_registered_on_retry(self, registry, paths, identity):
        def decline(directory):
            raise MissingSpecification("Cannot proceed without devcontainer.json")

        _, config = registry.init_sessions(["half"], CoworkConfig(), decline)
        assert config.sessions == []

        report, config = registry.init_sessions(["half"], config, _noop)
        assert report.skipped == ["half"]
        assert read_config(identity.config_path).sessions == ["half"]

        registry.remove_all(config)
        assert not (paths.sessions_dir / "my-app-half").exists()

    def test_invalid_name_is_reported(self, registry, fake_git):
        report, _ = registry.init_sessions(["../escape", "ok"], CoworkConfig(), _noop)
        assert "../escape" in report.failed
        assert report.created == ["ok"]
        assert len(fake_git.clones) == 1

    def test_create_session_rejects_invalid_name(self, registry):
        with pytest.raises(InvalidSessionName):
            registry.create_session("-x", _noop)

    def test_keeps_project_scalars(self, registry, identity):
        config = CoworkConfig(dockerfile_override="Dockerfile.dev")
        registry.init_sessions(["a"], config, _noop)
        assert read_config(identity.config_path).dockerfile_override == "Dockerfile.dev"


class TestListSessions:
    def test_statuses(self, registry, paths, fake_runtime):
        _, config = registry.init_sessions(["up", "down"], CoworkConfig(), _noop)
        config = config.with_sessions([*config.sessions, "gone"])
        fake_runtime.running[paths.sessions_dir / "my-app-up"] = "abc123"

        sessions = {s.name: s for s in registry.list_sessions(config)}

        assert sessions["up"].status is SessionStatus.RUNNING
        assert sessions["up"].container_id == "abc123"
        assert sessions["down"].status is SessionStatus.STOPPED
        assert sessions["down"].branch == "down"
        assert sessions["down"].last_modified is not None
        assert sessions["gone"].status is SessionStatus.MISSING
        assert sessions["gone"].branch is None

    def test_single_runtime_query(self, registry, fake_runtime):
        _, config = registry.init_sessions(["a", "b", "c"], CoworkConfig(), _noop)
        fake_runtime.queries = 0
        registry.list_sessions(config)
        assert fake_runtime.queries == 1

    def test_get_session(self, registry, paths, fake_runtime):
        _, config = registry.init_sessions(["a"], CoworkConfig(), _noop)
        fake_runtime.running[paths.sessions_dir / "my-app-a"] = "c-a"

        assert registry.get_session("a", config).status is SessionStatus.RUNNING
        assert registry.get_session("nope", config) is None

    def test_order_follows_config(self, registry):
        _, config = registry.init_sessions(["z", "a", "m"], CoworkConfig(), _noop)
        assert [s.name for s in registry.list_sessions(config)] == ["z", "a", "m"]


class TestStopAndRemove:
    def test_stop_all_only_running(self, registry, paths, fake_runtime):
        _, config = registry.init_sessions(["a", "b"], CoworkConfig(), _noop)
        fake_runtime.running[paths.sessions_dir / "my-app-a"] = "c-a"
        fake_runtime.running[paths.sessions_dir.parent / "unrelated"] = "c-other"

        assert registry.stop_all(config) == ["a"]
        assert fake_runtime.stopped == ["c-a"]

    def test_remove_all_stops_before_deleting(self, registry, paths, fake_runtime, identity, monkeypatch):
        _, config = registry.init_sessions(["a", "b"], CoworkConfig(), _noop)
        fake_runtime.running[paths.sessions_dir / "my-app-a"] = "c-a"

        import cowork.sessions.registry as registry_module

        real_rmtree = registry_module.shutil.rmtree

        def recording_rmtree(path, *args, **kwargs):
            fake_runtime.events.append(f"rm {path.name}")
            real_rmtree(path, *args, **kwargs)

        monkeypatch.setattr(registry_module.shutil, "rmtree", recording_rmtree)

        config = registry.remove_all(config)

        assert fake_runtime.events == ["stop c-a", "rm my-app-a", "rm my-app-b"]
        assert config.sessions == []
        assert list(paths.sessions_dir.iterdir()) == []
        assert read_config(identity.config_path).sessions == []
