"""Branch reconciliation state machine.

Given the repository's condition and an optional requested branch, decides
which git operations to run and in what order:

    DETECT_MAIN -> RESOLVE_TARGET -> CHECK_DIRTY -> {REVERT | ABORT | CONTINUE}
        -> SWITCH_BRANCH -> PULL_OR_CREATE -> CLEANUP_STALE -> DONE

The decision state lives in an immutable DecisionContext. Each step returns a
new context instead of reassigning shared variables.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Protocol, Tuple

from .console import Level
from .errors import DirtyWorkingTreeError, UserDeclinedError
from .git_facade import GitCommandError, GitFacade, describe_error
from .observability import log_action, log_debug
from .snapshot import RepositoryInfo, SnapshotBuilder
from .stale import PROTECTED_BRANCHES, collect_stale_branches

NO_TRACKING_MARKER = "There is no tracking information"
UP_TO_DATE_MARKER = "Already up to date"


class UserInterface(Protocol):
    def emit(self, level: Level, message: str) -> None: ...

    def echo(self, text: str = "") -> None: ...

    def confirm(self, message: str) -> bool: ...


class Phase(str, Enum):
    DETECT_MAIN = "detect_main"
    RESOLVE_TARGET = "resolve_target"
    CHECK_DIRTY = "check_dirty"
    REVERT = "revert"
    ABORT = "abort"
    CONTINUE = "continue"
    SWITCH_BRANCH = "switch_branch"
    PULL_OR_CREATE = "pull_or_create"
    CLEANUP_STALE = "cleanup_stale"
    DONE = "done"


class BranchOrigin(str, Enum):
    """Where the target branch comes from."""

    EXISTING_LOCAL = "existing_local"
    EXISTING_REMOTE = "existing_remote"  # needs a tracking checkout
    TO_CREATE = "to_create"  # created off HEAD after the pull


@dataclass(frozen=True)
class DecisionContext:
    """Working state of one reconciliation run."""

    phase: Phase = Phase.DETECT_MAIN
    requested_branch: Optional[str] = None
    target_branch: str = "main"
    origin: BranchOrigin = BranchOrigin.EXISTING_LOCAL
    current_branch: str = ""
    dirty: bool = False
    tree_reset: bool = False
    deleted_branches: Tuple[str, ...] = ()

    @property
    def create_branch(self) -> Optional[str]:
        """Name of the branch to create, if creation was confirmed."""
        if self.origin is BranchOrigin.TO_CREATE:
            return self.requested_branch
        return None

    @property
    def is_remote_branch(self) -> bool:
        return self.origin is BranchOrigin.EXISTING_REMOTE

    @property
    def creating_with_changes(self) -> bool:
        return self.create_branch is not None and self.dirty


class ReconciliationEngine:
    """Runs the state machine against a repository.

    Attributes:
        git: Query/mutate facade for the repository
        repo: Remote and root resolved at the start of the run
        ui: emit/echo/confirm capabilities (a Terminal in production)
        cleanup_enabled: Whether CLEANUP_STALE may delete branches
    """

    def __init__(
        self,
        git: GitFacade,
        repo: RepositoryInfo,
        ui: UserInterface,
        *,
        snapshot: Optional[SnapshotBuilder] = None,
        cleanup_enabled: bool = True,
    ):
        self.git = git
        self.repo = repo
        self.ui = ui
        self.snapshot = snapshot or SnapshotBuilder(git)
        self.cleanup_enabled = cleanup_enabled

    def _advance(self, ctx: DecisionContext, phase: Phase, **changes) -> DecisionContext:
        new_ctx = replace(ctx, phase=phase, **changes)
        log_action(
            "engine.transition",
            from_phase=ctx.phase.value,
            to_phase=phase.value,
            target=new_ctx.target_branch,
            origin=new_ctx.origin.value,
            current=new_ctx.current_branch,
            dirty=new_ctx.dirty,
        )
        return new_ctx

    def run(self, requested_branch: Optional[str] = None) -> DecisionContext:
        ctx = DecisionContext(requested_branch=requested_branch or None)
        ctx = self.detect_main(ctx)
        ctx = self.resolve_target(ctx)
        ctx = self.check_dirty(ctx)
        ctx = self.switch_branch(ctx)
        ctx = self.pull_or_create(ctx)
        ctx = self.cleanup_stale(ctx)
        return self._advance(ctx, Phase.DONE)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def detect_main(self, ctx: DecisionContext) -> DecisionContext:
        main_branch = "main"
        try:
            self.git.ref_exists(main_branch)
        except GitCommandError:
            main_branch = "master"
        self.ui.emit(Level.INFO, f"Using main branch: {main_branch}")
        return self._advance(ctx, Phase.DETECT_MAIN, target_branch=main_branch)

    def resolve_target(self, ctx: DecisionContext) -> DecisionContext:
        name = ctx.requested_branch
        if not name:
            return self._advance(ctx, Phase.RESOLVE_TARGET)

        validation = self.snapshot.validate_branch(name, self.repo.default_remote)
        if validation.local_exists:
            return self._advance(
                ctx, Phase.RESOLVE_TARGET, target_branch=name, origin=BranchOrigin.EXISTING_LOCAL
            )
        if validation.remote_exists:
            return self._advance(
                ctx, Phase.RESOLVE_TARGET, target_branch=name, origin=BranchOrigin.EXISTING_REMOTE
            )

        prompt = f"Branch '{name}' does not exist locally or on remote. Create it?"
        if not self.ui.confirm(prompt):
            self._advance(ctx, Phase.ABORT)
            raise UserDeclinedError(prompt)
        return self._advance(ctx, Phase.RESOLVE_TARGET, origin=BranchOrigin.TO_CREATE)

    def check_dirty(self, ctx: DecisionContext) -> DecisionContext:
        current = self.snapshot.current_branch()
        tree = self.snapshot.working_tree(include_files=True)
        ctx = self._advance(ctx, Phase.CHECK_DIRTY, current_branch=current, dirty=tree.dirty)

        if not tree.dirty:
            return self._advance(ctx, Phase.CONTINUE)

        if ctx.create_branch:
            self.ui.emit(Level.INFO, "Creating new branch with uncommitted changes")
            return self._advance(ctx, Phase.CONTINUE)

        if current == ctx.target_branch:
            return self._revert_or_abort(ctx, tree.files)

        self._advance(ctx, Phase.ABORT)
        raise DirtyWorkingTreeError()

    def _revert_or_abort(self, ctx: DecisionContext, changed_files: List[str]) -> DecisionContext:
        self.ui.echo()
        self.ui.emit(
            Level.WARNING,
            f"You are on {ctx.target_branch} branch with uncommitted changes:",
        )
        self.ui.echo()
        for path in changed_files:
            self.ui.echo(f" ./{path}")
        self.ui.echo()

        prompt = "Revert all changes?"
        if not self.ui.confirm(prompt):
            self._advance(ctx, Phase.ABORT)
            raise UserDeclinedError(prompt)

        self.ui.emit(Level.ACTION, "Resetting working directory...")
        self.git.stage_all()
        self.git.hard_reset_to_head()
        self.ui.emit(Level.SUCCESS, "Working directory cleaned")
        return self._advance(ctx, Phase.REVERT, dirty=False, tree_reset=True)

    def switch_branch(self, ctx: DecisionContext) -> DecisionContext:
        # The pending branch is created later from HEAD, carrying the changes along
        if ctx.creating_with_changes:
            log_debug("Skipping switch: new branch keeps uncommitted changes")
            return self._advance(ctx, Phase.SWITCH_BRANCH)

        target = ctx.target_branch
        if ctx.current_branch == target:
            return self._advance(ctx, Phase.SWITCH_BRANCH)

        if ctx.is_remote_branch:
            self.ui.emit(Level.ACTION, f"Switching to remote branch {target}...")
            self.git.checkout_new_tracking(target, f"{self.repo.default_remote}/{target}")
            return self._advance(ctx, Phase.SWITCH_BRANCH, current_branch=target)

        if not ctx.create_branch:
            self.ui.emit(Level.ACTION, f"Switching to {target} branch...")
            self.git.checkout(target)
            return self._advance(ctx, Phase.SWITCH_BRANCH, current_branch=target)

        self.ui.emit(Level.INFO, f"Branching off from {ctx.current_branch} branch")
        return self._advance(ctx, Phase.SWITCH_BRANCH)

    def pull_or_create(self, ctx: DecisionContext) -> DecisionContext:
        if not ctx.creating_with_changes:
            self.ui.emit(Level.ACTION, "Pulling latest changes...")
            self.quick_pull(ctx.target_branch)

        new_branch = ctx.create_branch
        if new_branch:
            self.ui.emit(Level.ACTION, f"Creating branch {new_branch}...")
            self.git.checkout_new(new_branch)
            return self._advance(ctx, Phase.PULL_OR_CREATE, current_branch=new_branch)
        return self._advance(ctx, Phase.PULL_OR_CREATE)

    def quick_pull(self, branch: str) -> None:
        """Fast-forward to ``<remote>/<branch>``, falling back to a plain pull.

        A branch without upstream tracking is skipped, not treated as an error.
        Any other pull failure propagates.
        """
        try:
            self.git.merge_ff_only(f"{self.repo.default_remote}/{branch}")
        except GitCommandError as exc:
            log_debug("Fast-forward failed", branch=branch, error=str(exc))
        else:
            self.ui.emit(Level.SUCCESS, "Fast-forwarded to latest changes")
            return

        self.ui.emit(Level.ACTION, "Cannot fast-forward, using git pull...")
        try:
            output = self.git.pull()
        except GitCommandError as exc:
            if NO_TRACKING_MARKER not in str(exc):
                raise
            self.ui.emit(Level.INFO, f"Branch '{branch}' has no upstream tracking, skipping pull")
            return
        if UP_TO_DATE_MARKER in output:
            self.ui.emit(Level.INFO, "Repository is already up to date")

    def cleanup_stale(self, ctx: DecisionContext) -> DecisionContext:
        if not self.cleanup_enabled or ctx.target_branch not in PROTECTED_BRANCHES:
            return self._advance(ctx, Phase.CLEANUP_STALE)

        self.ui.emit(Level.ACTION, "Cleaning up branches with deleted remotes...")
        scan = collect_stale_branches(self.git, ctx.target_branch, self.repo.default_remote)
        if not scan.success:
            self.ui.emit(Level.ERROR, f"Error finding branches with deleted remotes: {scan.error}")

        candidates = scan.branches_or_empty()
        if not candidates:
            self.ui.emit(Level.INFO, "No branches with deleted remotes found")
            return self._advance(ctx, Phase.CLEANUP_STALE)

        deleted = []
        for branch in candidates:
            self.ui.emit(Level.INFO, f"Deleting branch {branch} (remote deleted)")
            try:
                self.git.delete_branch_force(branch)
            except GitCommandError as exc:
                self.ui.emit(Level.ERROR, f"Failed to delete branch {branch}: {describe_error(exc)}")
                continue
            deleted.append(branch)

        if deleted:
            plural = "es" if len(deleted) > 1 else ""
            self.ui.emit(Level.SUCCESS, f"Deleted {len(deleted)} branch{plural} with deleted remotes")
        return self._advance(ctx, Phase.CLEANUP_STALE, deleted_branches=tuple(deleted))
