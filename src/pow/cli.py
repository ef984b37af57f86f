#!/usr/bin/env python3
"""pow CLI - sync the current checkout with its main branch."""
from __future__ import annotations

import argparse
import sys

# Fail fast on unsupported interpreter version
if sys.version_info < (3, 10):
    print(f"pow requires Python 3.10+; found {sys.version.split()[0]}", file=sys.stderr)
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    from . import __version__

    ap = argparse.ArgumentParser(
        prog="pow",
        description=(
            "Sync the current repository with main/master, optionally switching to "
            "or creating a branch, and reinstall dependencies when the lockfile changed"
        ),
    )
    ap.add_argument(
        "branch_name",
        nargs="?",
        help="Branch to switch to (created after confirmation if it does not exist)",
    )
    ap.add_argument("--verbose", action="store_true", help="Write debug diagnostics to stderr")
    ap.add_argument("--version", action="version", version=f"pow {__version__}")

    args = ap.parse_args(argv)

    from . import observability
    from .commands import sync
    from .config_loader import ConfigError, get_config
    from .console import Terminal
    from .errors import PowError
    from .git_facade import describe_error

    terminal = Terminal()

    try:
        config = get_config()
    except ConfigError as e:
        terminal.error(f"Config error: {describe_error(e)}")
        sys.exit(1)

    observability.configure(
        level="DEBUG" if args.verbose else config.logging.level,
        log_dir=config.logging.dir or None,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        disable_file=config.logging.disable_file,
    )
    observability.log_debug("pow invoked", branch=args.branch_name, version=__version__)

    try:
        sync(args.branch_name, ui=terminal, config=config)
    except PowError as e:
        if not e.silent:
            terminal.error(str(e))
        observability.log_warning(f"Run aborted: {e}", error_type=type(e).__name__)
        sys.exit(e.exit_code)
    except (KeyboardInterrupt, EOFError):
        terminal.echo()
        sys.exit(1)
    except Exception as e:
        terminal.error(f"Error: {describe_error(e)}")
        observability.log_error(f"Unhandled failure: {e}", error_type=type(e).__name__)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
