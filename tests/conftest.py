from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from git import Repo

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from pow.console import Level  # noqa: E402

MAIN_LOCKFILE = '{\n  "name": "fixture",\n  "lockfileVersion": 3\n}\n'


def pytest_sessionstart(session):  # type: ignore[override]
    # Ensure subprocess runs of `python -m pow` resolve the src layout
    os.environ.setdefault("PYTHONPATH", str(SRC))


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path_factory):
    """Keep user config, log files and git identity out of the developer's home."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    for name in list(os.environ):
        if name.startswith("POW_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("POW_LOG_DISABLE_FILE", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Pow Tester")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tester@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Pow Tester")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tester@example.com")
    yield home


class FakeTerminal:
    """Records emitted lines and answers prompts from a script."""

    def __init__(self, answers: Optional[List[bool]] = None):
        self.answers = list(answers or [])
        self.lines: List[Tuple[Optional[Level], str]] = []
        self.prompts: List[str] = []

    def emit(self, level: Level, message: str) -> None:
        self.lines.append((level, message))

    def echo(self, text: str = "") -> None:
        self.lines.append((None, text))

    def confirm(self, message: str) -> bool:
        self.prompts.append(message)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {message}")
        return self.answers.pop(0)

    def messages(self, level: Optional[Level] = None) -> List[str]:
        return [text for lvl, text in self.lines if level is None or lvl is level]

    @property
    def output(self) -> str:
        return "\n".join(text for _, text in self.lines)


def commit_file(repo: Repo, relpath: str, content: str, message: str) -> None:
    path = Path(repo.working_tree_dir) / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([relpath])
    repo.index.commit(message)


def init_remote_repo(remote_path: Path) -> Repo:
    remote_path.mkdir(parents=True, exist_ok=True)
    remote = Repo.init(remote_path, bare=True)
    remote.git.symbolic_ref("HEAD", "refs/heads/main")
    return remote


def push_from_teammate(remote_path: Path, workdir: Path, branch: str, relpath: str, content: str) -> None:
    """Clone the remote elsewhere, commit on ``branch`` and push it."""
    teammate = Repo.clone_from(remote_path.as_posix(), workdir)
    if branch != "main":
        teammate.git.checkout("-B", branch)
    commit_file(teammate, relpath, content, f"Update {relpath}")
    teammate.git.push("origin", f"{branch}:{branch}")
    shutil.rmtree(workdir)


@pytest.fixture
def remote_path(tmp_path) -> Path:
    path = tmp_path / "remote.git"
    init_remote_repo(path)
    return path


@pytest.fixture
def local_repo(tmp_path, remote_path) -> Repo:
    """A clean checkout on ``main`` tracking ``origin/main``, with an npm lockfile."""
    workdir = tmp_path / "work"
    repo = Repo.init(workdir)
    commit_file(repo, "README.md", "fixture\n", "Initial commit")
    commit_file(repo, "package-lock.json", MAIN_LOCKFILE, "Add lockfile")
    repo.git.branch("-M", "main")
    repo.create_remote("origin", remote_path.as_posix())
    repo.git.push("-u", "origin", "main")
    return repo


@pytest.fixture
def workdir(local_repo) -> Path:
    return Path(local_repo.working_tree_dir)
