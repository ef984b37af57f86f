"""Repository facts gathered before any mutation happens.

Only read-only queries run here, which is what allows them to be issued in
parallel. Results are merged with ``run_parallel``: a failing required task
fails the whole join, a failing optional task yields its default.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import NoRemoteConfiguredError, NotAGitRepositoryError
from .git_facade import GitCommandError, GitFacade
from .observability import log_debug, log_warning


@dataclass(frozen=True)
class RepositoryInfo:
    """Produced once per run; immutable afterwards."""

    default_remote: str
    root_path: str


@dataclass(frozen=True)
class BranchValidation:
    """Where a candidate branch exists. Both, either or neither may be true."""

    local_exists: bool
    remote_exists: bool


@dataclass(frozen=True)
class WorkingTreeStatus:
    dirty: bool
    porcelain: str = ""
    files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ParallelTask:
    """A read-only query for ``run_parallel``."""

    name: str
    fn: Callable[[], Any]
    required: bool = True
    default: Any = None


def run_parallel(tasks: Sequence[ParallelTask]) -> Dict[str, Any]:
    """Run independent read-only tasks concurrently and join the results.

    Returns:
        Mapping of task name to result (or default, for failed optional tasks)

    Raises:
        The exception of the first failed required task, in submission order.
    """
    results: Dict[str, Any] = {}
    failures: Dict[str, BaseException] = {}
    if not tasks:
        return results

    with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
        futures: Dict[Future, ParallelTask] = {executor.submit(task.fn): task for task in tasks}
        for future in as_completed(futures):
            task = futures[future]
            try:
                results[task.name] = future.result()
            except Exception as exc:
                if task.required:
                    failures[task.name] = exc
                else:
                    log_warning(f"Optional query '{task.name}' failed, using default", error=str(exc))
                    results[task.name] = task.default

    for task in tasks:
        if task.name in failures:
            raise failures[task.name]
    return results


def _succeeded(future: Future) -> bool:
    try:
        future.result()
    except Exception as exc:
        log_debug("Existence probe failed", error=str(exc))
        return False
    return True


class SnapshotBuilder:
    """Collects the facts the reconciliation engine decides on."""

    def __init__(self, git: GitFacade):
        self.git = git

    def _repo_root(self) -> str:
        try:
            return self.git.get_repo_root()
        except GitCommandError as exc:
            raise NotAGitRepositoryError() from exc

    def build(self) -> RepositoryInfo:
        """Query default remote and repository root together.

        Raises:
            NotAGitRepositoryError: the root-path query failed
            NoRemoteConfiguredError: the repository has no remote
        """
        results = run_parallel(
            [
                ParallelTask("root_path", self._repo_root),
                ParallelTask("default_remote", self.git.get_default_remote),
            ]
        )
        if not results["default_remote"]:
            raise NoRemoteConfiguredError()

        info = RepositoryInfo(
            default_remote=results["default_remote"],
            root_path=results["root_path"],
        )
        log_debug("Repository info", remote=info.default_remote, root=info.root_path)
        return info

    def validate_branch(self, name: str, remote: str) -> BranchValidation:
        """Probe local and remote existence of ``name`` concurrently.

        A failing probe only means "does not exist there"; it never fails
        the run.
        """
        with ThreadPoolExecutor(max_workers=2) as executor:
            local_probe = executor.submit(self.git.ref_exists, name)
            remote_probe = executor.submit(self.git.remote_ref_exists, remote, name)
            validation = BranchValidation(
                local_exists=_succeeded(local_probe),
                remote_exists=_succeeded(remote_probe),
            )
        log_debug(
            f"Validated branch {name}",
            local=validation.local_exists,
            remote=validation.remote_exists,
        )
        return validation

    def current_branch(self) -> str:
        return self.git.get_current_branch()

    def working_tree(self, include_files: bool = False) -> WorkingTreeStatus:
        porcelain = self.git.get_status_porcelain()
        dirty = bool(porcelain.strip())
        files: Optional[List[str]] = None
        if dirty and include_files:
            files = self.git.list_changed_files()
        return WorkingTreeStatus(dirty=dirty, porcelain=porcelain, files=files or [])
