from __future__ import annotations

import logging
from typing import Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

# (source, fstype, options, mount point relative to target root)
CHROOT_FILESYSTEMS = [
    ("proc", "proc", "nosuid,noexec,nodev", "proc"),
    ("sys", "sysfs", "nosuid,noexec,nodev,ro", "sys"),
    ("devpts", "devtmpfs", "mode=0755,nosuid", "dev"),
]


def chroot_cmd(target_root: str, argv: Sequence[str], *, dry_run: bool = False) -> CmdResult:
    """Run a command inside target root, its output going straight to the terminal."""

    return run_cmd(["chroot", target_root, *argv], privileged=True, stream=True, dry_run=dry_run)


def mount_chroot_filesystems(target_root: str, *, dry_run: bool = False) -> None:
    # Host kernel filesystems the provisioning script needs (apt, systemctl, dpkg triggers)
    for src, fstype, opts, rel in CHROOT_FILESYSTEMS:
        run_cmd(
            ["mount", src, "-t", fstype, "-o", opts, f"{target_root}/{rel}/"],
            privileged=True,
            dry_run=dry_run,
        )


def umount_chroot_filesystems(target_root: str, *, dry_run: bool = False) -> None:
    for _src, _fstype, _opts, rel in CHROOT_FILESYSTEMS:
        run_cmd(["umount", "-fl", f"{target_root}/{rel}"], check=False, privileged=True, dry_run=dry_run)
