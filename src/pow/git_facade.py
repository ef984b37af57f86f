"""Thin query/mutate wrapper around the git command line.

Each method is one git invocation through GitPython's command wrapper. A
method either returns the command's stdout or raises GitCommandError; no
method keeps state between calls, so read-only queries may be issued from
several threads at once.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import List

import git
from git import GitCommandError

from .observability import log_debug

__all__ = ["GitFacade", "GitCommandError", "describe_error"]

_STDERR_PREFIX = "stderr: '"


def describe_error(exc: BaseException) -> str:
    """Reduce a failure to a single human-readable line.

    For git failures this is the last non-empty line git wrote to stderr,
    or ``exit code N`` when it wrote nothing.
    """
    if isinstance(exc, GitCommandError):
        # GitPython stores stderr wrapped as "\n  stderr: '<text>'"
        stderr = (exc.stderr or "").strip()
        if stderr.startswith(_STDERR_PREFIX):
            stderr = stderr[len(_STDERR_PREFIX):]
            if stderr.endswith("'"):
                stderr = stderr[:-1]
        lines = [line.strip() for line in stderr.splitlines() if line.strip()]
        if lines:
            return lines[-1]
        return f"exit code {exc.status}"
    lines = [line.strip() for line in str(exc).splitlines() if line.strip()]
    return " ".join(lines) or type(exc).__name__


class GitFacade:
    """One method per git operation used by pow."""

    def __init__(self, working_dir: Path | str | None = None):
        self.working_dir = Path(working_dir) if working_dir is not None else Path.cwd()
        self._git = git.Git(str(self.working_dir))

    def _run(self, command: str, *args: str) -> str:
        start = time.time()
        log_debug(f"GIT_OP_START: {command} {' '.join(args)}".rstrip())
        try:
            output = getattr(self._git, command)(*args)
        except GitCommandError as exc:
            log_debug(
                f"GIT_OP_FAIL: {command}",
                status=exc.status,
                elapsed=round(time.time() - start, 3),
                stderr=(exc.stderr or "").strip()[:300],
            )
            raise
        log_debug(f"GIT_OP_END: {command}", elapsed=round(time.time() - start, 3))
        return output

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_default_remote(self) -> str:
        """First remote listed by `git remote show -n`, or "" when there is none."""
        lines = self._run("remote", "show", "-n").strip().splitlines()
        return lines[0].strip() if lines else ""

    def get_repo_root(self) -> str:
        return self._run("rev_parse", "--show-toplevel").strip()

    def ref_exists(self, name: str) -> str:
        """Raises GitCommandError when ``name`` does not resolve locally."""
        return self._run("rev_parse", "--quiet", "--verify", name)

    def remote_ref_exists(self, remote: str, name: str) -> str:
        """Raises GitCommandError when the remote has no branch named exactly ``name``."""
        return self._run("ls_remote", "--exit-code", "--heads", remote, f"refs/heads/{name}")

    def get_current_branch(self) -> str:
        return self._run("rev_parse", "--abbrev-ref", "HEAD").strip()

    def get_status_porcelain(self) -> str:
        return self._run("status", "--porcelain")

    def list_changed_files(self) -> List[str]:
        """Modified and untracked paths, relative to the repository root."""
        output = self._run("ls_files", "-mo", "--exclude-standard")
        return [line for line in output.splitlines() if line]

    def list_branches_verbose(self) -> str:
        return self._run("branch", "-vv", "--no-color")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def fetch(self) -> str:
        return self._run("fetch")

    def stage_all(self) -> str:
        return self._run("add", "--all")

    def hard_reset_to_head(self) -> str:
        return self._run("reset", "--hard", "HEAD")

    def checkout(self, name: str) -> str:
        return self._run("checkout", name)

    def checkout_new_tracking(self, name: str, start_point: str) -> str:
        """Create ``name`` from ``start_point`` (e.g. origin/name) and switch to it."""
        return self._run("checkout", "-b", name, start_point)

    def checkout_new(self, name: str) -> str:
        """Create ``name`` from HEAD and switch to it, keeping uncommitted changes."""
        return self._run("checkout", "-b", name)

    def merge_ff_only(self, ref: str) -> str:
        return self._run("merge", "--ff-only", ref)

    def pull(self) -> str:
        return self._run("pull")

    def prune_remote(self, remote: str) -> str:
        return self._run("remote", "prune", remote)

    def delete_branch_force(self, name: str) -> str:
        return self._run("branch", "-D", name)
