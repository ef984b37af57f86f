"""End-to-end runs of ``pow.commands.sync`` with a fake installer."""

from __future__ import annotations

import pytest
from git import Repo

from pow.commands import sync
from pow.config_schema import PowConfig
from pow.console import Level
from pow.dependencies import PackageManager
from pow.errors import NoRemoteConfiguredError, NotAGitRepositoryError

from conftest import MAIN_LOCKFILE, FakeTerminal, commit_file, push_from_teammate

FEATURE_LOCKFILE = '{\n  "name": "fixture",\n  "lockfileVersion": 3,\n  "packages": {"left-pad": "1.3.0"}\n}\n'


class RecordingInstaller:
    def __init__(self):
        self.calls = []

    def __call__(self, manager, root, commands=None):
        self.calls.append((manager, str(root), commands))


@pytest.fixture
def installer():
    return RecordingInstaller()


def test_clean_main_run(local_repo, workdir, installer):
    terminal = FakeTerminal()

    ctx = sync(working_dir=workdir, ui=terminal, installer=installer)

    assert ctx.current_branch == "main"
    assert local_repo.active_branch.name == "main"
    assert installer.calls == []
    assert terminal.messages(Level.ACTION)[:2] == [
        "Setting up repository...",
        "Fetching latest changes and detecting dependencies...",
    ]
    assert "package-lock.json is unchanged" in terminal.messages(Level.INFO)
    assert terminal.lines[-1] == (Level.SUCCESS, "All done!")


def test_dirty_main_accept_revert(local_repo, workdir, installer):
    (workdir / "dirty-file.txt").write_text("dirty\n")
    terminal = FakeTerminal(answers=[True])

    sync(working_dir=workdir, ui=terminal, installer=installer)

    assert "uncommitted changes" in terminal.output
    assert local_repo.git.status("--porcelain") == ""
    assert not (workdir / "dirty-file.txt").exists()
    assert terminal.lines[-1] == (Level.SUCCESS, "All done!")


def test_lockfile_change_from_feature_branch_triggers_install(local_repo, workdir, installer):
    local_repo.git.checkout("-b", "feature/deps")
    commit_file(local_repo, "package-lock.json", FEATURE_LOCKFILE, "Bump deps")
    terminal = FakeTerminal()

    sync(working_dir=workdir, ui=terminal, installer=installer)

    assert local_repo.active_branch.name == "main"
    assert (workdir / "package-lock.json").read_text() == MAIN_LOCKFILE
    assert "Installing dependencies with npm..." in terminal.messages(Level.ACTION)
    assert len(installer.calls) == 1
    manager, root, commands = installer.calls[0]
    assert manager is PackageManager.NPM
    assert commands["npm"] == "npm ci"


def test_lockfile_change_pulled_from_remote_triggers_install(local_repo, workdir, remote_path, tmp_path, installer):
    push_from_teammate(remote_path, tmp_path / "mate", "main", "package-lock.json", FEATURE_LOCKFILE)
    terminal = FakeTerminal()

    sync(working_dir=workdir, ui=terminal, installer=installer)

    assert (workdir / "package-lock.json").read_text() == FEATURE_LOCKFILE
    assert [call[0] for call in installer.calls] == [PackageManager.NPM]


def test_install_disabled_only_reports(local_repo, workdir, installer):
    local_repo.git.checkout("-b", "feature/deps")
    commit_file(local_repo, "package-lock.json", FEATURE_LOCKFILE, "Bump deps")
    config = PowConfig.model_validate({"install": {"enabled": False}})
    terminal = FakeTerminal()

    sync(working_dir=workdir, ui=terminal, config=config, installer=installer)

    assert installer.calls == []
    assert any("skipping install" in msg for msg in terminal.messages(Level.INFO))


def test_configured_install_command_is_passed(local_repo, workdir, installer):
    local_repo.git.checkout("-b", "feature/deps")
    commit_file(local_repo, "package-lock.json", FEATURE_LOCKFILE, "Bump deps")
    config = PowConfig.model_validate({"install": {"npm": "npm install --no-audit"}})

    sync(working_dir=workdir, ui=FakeTerminal(), config=config, installer=installer)

    assert installer.calls[0][2]["npm"] == "npm install --no-audit"


def test_no_lockfile_no_dependency_message(local_repo, workdir, installer):
    local_repo.index.remove(["package-lock.json"], working_tree=True)
    local_repo.index.commit("Drop lockfile")
    local_repo.git.push("origin", "main")
    terminal = FakeTerminal()

    sync(working_dir=workdir, ui=terminal, installer=installer)

    assert installer.calls == []
    assert not any("unchanged" in msg for msg in terminal.messages())


def test_cleanup_disabled_by_config(local_repo, workdir, installer):
    local_repo.git.checkout("-b", "stale")
    local_repo.git.push("-u", "origin", "stale")
    local_repo.git.checkout("main")
    Repo(local_repo.remotes.origin.url).git.branch("-D", "stale")
    config = PowConfig.model_validate({"cleanup": {"enabled": False}})

    ctx = sync(working_dir=workdir, ui=FakeTerminal(), config=config, installer=installer)

    assert ctx.deleted_branches == ()
    assert "stale" in [head.name for head in local_repo.heads]


def test_outside_repository(tmp_path, installer):
    plain = tmp_path / "plain"
    plain.mkdir()
    terminal = FakeTerminal()

    with pytest.raises(NotAGitRepositoryError):
        sync(working_dir=plain, ui=terminal, installer=installer)

    assert terminal.messages(Level.ACTION) == ["Setting up repository..."]


def test_repository_without_remote(tmp_path, installer):
    repo = Repo.init(tmp_path / "solo")
    commit_file(repo, "a.txt", "a\n", "init")

    with pytest.raises(NoRemoteConfiguredError):
        sync(working_dir=tmp_path / "solo", ui=FakeTerminal(), installer=installer)
