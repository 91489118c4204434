from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def sync_tree(
    src: str,
    dst: str,
    *,
    preserve_owner: bool = True,
    verbose: bool = False,
    check: bool = False,
    dry_run: bool = False,
) -> Optional[CmdResult]:
    """Copy the contents of src into dst with rsync.

    Owner/group are dropped when the destination is FAT (no unix ownership).
    Failures, a missing src included, are logged and skipped unless check=True.
    """

    s = Path(src)
    if not s.is_dir():
        if check:
            raise FileNotFoundError(src)
        logger.warning("Overlay source %s missing, skipping copy to %s", src, dst)
        return None

    flags = "-av" if verbose else "-a"
    argv = ["rsync", flags]
    if not preserve_owner:
        argv += ["--no-owner", "--no-group"]
    argv += [f"{s}/.", dst]

    return run_cmd(argv, check=check, privileged=True, dry_run=dry_run)
