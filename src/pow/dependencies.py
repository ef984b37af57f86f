"""Package manager detection and lockfile-driven reinstall."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .errors import DependencyInstallError
from .observability import log_debug, timeit


class PackageManager(str, Enum):
    NONE = "none"
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"


# Detection priority: the first lockfile found wins
LOCKFILES: Dict[PackageManager, str] = {
    PackageManager.YARN: "yarn.lock",
    PackageManager.PNPM: "pnpm-lock.yaml",
    PackageManager.NPM: "package-lock.json",
}

DEFAULT_INSTALL_COMMANDS: Dict[PackageManager, str] = {
    PackageManager.YARN: "yarn --immutable",
    PackageManager.PNPM: "pnpm install --frozen-lockfile",
    PackageManager.NPM: "npm ci",
}


@dataclass(frozen=True)
class LockfileState:
    manager: PackageManager
    content_before: str = ""
    content_after: str = ""

    @property
    def changed(self) -> bool:
        return should_reinstall(self.content_before, self.content_after, self.manager)


def detect_manager(root_path: Path | str) -> PackageManager:
    """Pick the package manager from the lockfile present in ``root_path``.

    yarn.lock beats pnpm-lock.yaml beats package-lock.json.
    """
    root = Path(root_path)
    for manager, lockfile in LOCKFILES.items():
        if (root / lockfile).exists():
            return manager
    return PackageManager.NONE


def lockfile_name(manager: PackageManager) -> Optional[str]:
    return LOCKFILES.get(manager)


def read_file_if_exists(path: Path | str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (FileNotFoundError, IsADirectoryError, UnicodeDecodeError):
        return ""


def read_lockfile(root_path: Path | str, manager: PackageManager) -> str:
    name = lockfile_name(manager)
    if not name:
        return ""
    return read_file_if_exists(Path(root_path) / name)


def should_reinstall(before: str, after: str, manager: PackageManager) -> bool:
    """True when the lockfile content changed and a manager was detected."""
    if manager is PackageManager.NONE:
        return False
    return before != after


def install_command(manager: PackageManager, commands: Optional[Dict[str, str]] = None) -> List[str]:
    """Argument vector for ``manager``'s install, honouring config overrides."""
    if manager is PackageManager.NONE:
        raise ValueError("No package manager detected")
    command = (commands or {}).get(manager.value) or DEFAULT_INSTALL_COMMANDS[manager]
    return shlex.split(command)


def install_dependencies(
    manager: PackageManager,
    root_path: Path | str,
    commands: Optional[Dict[str, str]] = None,
) -> None:
    """Run the install for ``manager`` in ``root_path``, streaming its output.

    Raises:
        DependencyInstallError: the command is missing or exits non-zero
    """
    argv = install_command(manager, commands)
    log_debug("Running install", argv=argv, cwd=str(root_path))
    with timeit("dependencies.install", manager=manager.value):
        try:
            subprocess.run(argv, cwd=str(root_path), check=True)
        except subprocess.CalledProcessError as exc:
            raise DependencyInstallError(manager.value, f"exit code {exc.returncode}") from exc
        except OSError as exc:
            raise DependencyInstallError(manager.value, str(exc)) from exc
