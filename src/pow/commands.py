"""Top-level pow run: setup, reconcile, then reinstall dependencies if needed."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional

from .config_schema import PowConfig
from .console import Level, Terminal
from .dependencies import (
    LockfileState,
    PackageManager,
    detect_manager,
    install_dependencies,
    lockfile_name,
    read_lockfile,
)
from .engine import DecisionContext, ReconciliationEngine, UserInterface
from .errors import NotAGitRepositoryError
from .git_facade import GitCommandError, GitFacade
from .observability import log_debug, timeit
from .snapshot import ParallelTask, SnapshotBuilder, run_parallel

Installer = Callable[[PackageManager, Path | str, Optional[Dict[str, str]]], None]


def _fetch(git: GitFacade) -> str:
    try:
        return git.fetch()
    except GitCommandError as exc:
        if "not a git repository" in str(exc).lower():
            raise NotAGitRepositoryError() from exc
        raise


def sync(
    branch_name: Optional[str] = None,
    *,
    working_dir: Path | str | None = None,
    ui: Optional[UserInterface] = None,
    config: Optional[PowConfig] = None,
    installer: Installer = install_dependencies,
) -> DecisionContext:
    """Bring the checkout at ``working_dir`` up to date.

    Args:
        branch_name: Branch to switch to (created after confirmation if it
            exists nowhere); None syncs the main branch
        working_dir: Directory inside the repository (default: cwd)
        ui: emit/echo/confirm implementation (default: a rich Terminal)
        config: Loaded configuration (default: built-in defaults)
        installer: Runs the package manager install

    Returns:
        The final decision context of the reconciliation engine

    Raises:
        PowError: any fatal condition; GitCommandError from a mutating step
    """
    ui = ui or Terminal()
    config = config or PowConfig()
    git = GitFacade(working_dir)
    snapshot = SnapshotBuilder(git)

    ui.emit(Level.ACTION, "Setting up repository...")
    repo = snapshot.build()
    root = Path(repo.root_path)

    ui.emit(Level.ACTION, "Fetching latest changes and detecting dependencies...")
    with timeit("sync.prepare", remote=repo.default_remote):
        prepared = run_parallel(
            [
                ParallelTask("fetch", lambda: _fetch(git)),
                ParallelTask(
                    "manager",
                    lambda: detect_manager(root),
                    required=False,
                    default=PackageManager.NONE,
                ),
                ParallelTask(
                    "lockfile",
                    lambda: read_lockfile(root, detect_manager(root)),
                    required=False,
                    default="",
                ),
            ]
        )
    manager: PackageManager = prepared["manager"]
    log_debug("Detected package manager", manager=manager.value)

    engine = ReconciliationEngine(
        git,
        repo,
        ui,
        snapshot=snapshot,
        cleanup_enabled=config.cleanup.enabled,
    )
    ctx = engine.run(branch_name)

    lockfile = LockfileState(
        manager=manager,
        content_before=prepared["lockfile"],
        content_after=read_lockfile(root, manager),
    )
    if lockfile.changed:
        if config.install.enabled:
            ui.emit(Level.ACTION, f"Installing dependencies with {manager.value}...")
            installer(manager, root, config.install.commands())
        else:
            ui.emit(Level.INFO, f"{lockfile_name(manager)} changed, skipping install (install.enabled = false)")
    elif manager is not PackageManager.NONE:
        ui.emit(Level.INFO, f"{lockfile_name(manager)} is unchanged")

    ui.emit(Level.SUCCESS, "All done!")
    return ctx
