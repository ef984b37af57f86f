"""Exception hierarchy for pow runs.

Every failure that should end a run with a non-zero exit code derives from
PowError. The CLI reports ``str(error)`` as a single ERROR line unless the
error is marked silent (e.g. the user answered "n" at a prompt).
"""

from __future__ import annotations


class PowError(Exception):
    """Base exception for fatal pow conditions."""

    exit_code: int = 1
    silent: bool = False


class NotAGitRepositoryError(PowError):
    """The working directory is not inside a git repository."""

    def __init__(self, message: str = "Not a git repository"):
        super().__init__(message)


class NoRemoteConfiguredError(PowError):
    """The repository has no remote to sync with."""

    def __init__(self, message: str = "No remote repository found"):
        super().__init__(message)


class DirtyWorkingTreeError(PowError):
    """Uncommitted changes on a branch other than the target branch."""

    def __init__(self, message: str = "Branch is not clean"):
        super().__init__(message)


class UserDeclinedError(PowError):
    """The user answered "n" at a confirmation prompt."""

    silent = True

    def __init__(self, prompt: str = ""):
        self.prompt = prompt
        super().__init__(f"Declined: {prompt}" if prompt else "Declined")


class DependencyInstallError(PowError):
    """The package manager install step failed."""

    def __init__(self, manager: str, detail: str):
        self.manager = manager
        self.detail = detail
        super().__init__(f"Error: {manager} install failed: {detail}")
