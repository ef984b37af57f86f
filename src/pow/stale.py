"""Find local branches whose upstream was deleted on the remote."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .git_facade import GitFacade, describe_error
from .observability import log_debug

# "* name  abc1234 [origin/name: gone] subject"; worktree checkouts use "+"
BRANCH_LINE_PATTERN = re.compile(r"^\s*([*+]?\s*)(\S+)\s+[0-9a-f]{4,}\b(?:\s+\[([^\]]+)\])?\s*(.*)")
GONE_MARKER = ": gone"
PROTECTED_BRANCHES = frozenset({"main", "master"})


@dataclass(frozen=True)
class BranchLine:
    name: str
    tracking: str = ""
    subject: str = ""
    is_current: bool = False

    @property
    def upstream_gone(self) -> bool:
        return GONE_MARKER in self.tracking


@dataclass(frozen=True)
class StaleBranchScan:
    """Outcome of a stale-branch scan: either a list of names or a failure reason."""

    success: bool
    branches: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def ok(cls, branches: Iterable[str]) -> "StaleBranchScan":
        return cls(success=True, branches=list(branches))

    @classmethod
    def failed(cls, reason: str) -> "StaleBranchScan":
        return cls(success=False, error=reason)

    def branches_or_empty(self) -> List[str]:
        return list(self.branches) if self.success else []


def parse_branch_line(line: str) -> Optional[BranchLine]:
    """Parse one line of ``git branch -vv``; None for lines that do not match."""
    match = BRANCH_LINE_PATTERN.match(line)
    if not match:
        return None
    marker, name, tracking, subject = match.groups()
    return BranchLine(
        name=name,
        tracking=tracking or "",
        subject=subject or "",
        is_current=marker.strip() == "*",
    )


def find_stale_branches(listing: str, *, current_branch: str, main_branch: str) -> List[str]:
    """Branch names from ``listing`` whose tracking info says the upstream is gone.

    The current branch, the main branch and anything called main/master are
    never returned.
    """
    excluded = PROTECTED_BRANCHES | {current_branch, main_branch}
    stale: List[str] = []
    for line in listing.splitlines():
        if not line.strip():
            continue
        parsed = parse_branch_line(line)
        if parsed is None or parsed.name in excluded:
            continue
        if parsed.upstream_gone:
            stale.append(parsed.name)
    return stale


def collect_stale_branches(git: GitFacade, main_branch: str, remote: str) -> StaleBranchScan:
    """Prune ``remote`` and list branches with deleted upstreams. Never raises."""
    try:
        git.prune_remote(remote)
        listing = git.list_branches_verbose()
        current = git.get_current_branch()
        branches = find_stale_branches(listing, current_branch=current, main_branch=main_branch)
    except Exception as exc:
        reason = describe_error(exc)
        log_debug("Stale branch scan failed", error=reason)
        return StaleBranchScan.failed(reason)
    log_debug("Stale branch scan", branches=branches)
    return StaleBranchScan.ok(branches)
