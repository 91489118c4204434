from __future__ import annotations

import logging
from typing import Iterable

from .command import run_cmd

logger = logging.getLogger(__name__)

BOOT_PARTITION = 1
ROOT_PARTITION = 2

# Relative to the build root, innermost first. "" is the root mount itself.
MOUNT_POINTS = ("boot/firmware", "proc", "sys", "dev", "")

FILLER_NAME = "zerofree"


def mount_point(build_root: str, rel: str) -> str:
    return f"{build_root}/{rel}" if rel else build_root


def grow_image_file(image: str, size: str, *, dry_run: bool = False) -> None:
    run_cmd(["truncate", "-s", f"+{size}", image], dry_run=dry_run)


def grow_partition(image: str, number: int = ROOT_PARTITION, *, dry_run: bool = False) -> None:
    """Extend partition `number` to the end of the (already grown) image."""

    run_cmd(["sfdisk", f"-N{number}", image], input_text=", +\n", dry_run=dry_run)


def resize_filesystem(part: str, *, dry_run: bool = False) -> None:
    run_cmd(["resize2fs", part], privileged=True, dry_run=dry_run)


def set_disk_identifier(disk: str, identifier: str, *, dry_run: bool = False) -> None:
    """Pin the MBR disk identifier so PARTUUIDs in cmdline.txt/fstab stay stable.

    Uses fdisk expert mode: print, expert, identifier, return, print, write.
    """

    script = "\n".join(["p", "x", "i", identifier, "r", "p", "w"]) + "\n"
    run_cmd(["fdisk", disk], input_text=script, privileged=True, dry_run=dry_run)


def mount(dev: str, target: str, *, dry_run: bool = False) -> None:
    run_cmd(["mount", dev, target], privileged=True, dry_run=dry_run)


def umount(target: str, *, lazy: bool = True, dry_run: bool = False) -> None:
    argv = ["umount", "-fl", target] if lazy else ["umount", target]
    run_cmd(argv, check=False, privileged=True, dry_run=dry_run)


def umount_all(build_root: str, rels: Iterable[str] = MOUNT_POINTS, *, dry_run: bool = False) -> None:
    """Best-effort unmount; already-unmounted points are expected."""

    for rel in rels:
        umount(mount_point(build_root, rel), dry_run=dry_run)


def release_all(build_root: str, *, dry_run: bool = False) -> None:
    """Unmount before zerofree.

    The API filesystems go lazily; boot and root get a plain umount so a busy
    filesystem stays mounted and zerofree refuses to touch it.
    """

    for rel in ("proc", "sys", "dev"):
        umount(mount_point(build_root, rel), dry_run=dry_run)
    for rel in ("boot/firmware", ""):
        umount(mount_point(build_root, rel), lazy=False, dry_run=dry_run)


def trim_all(*, dry_run: bool = False) -> None:
    run_cmd(["fstrim", "-a"], privileged=True, dry_run=dry_run)


def zero_fill_free_space(mounted_dir: str, *, dry_run: bool = False) -> None:
    """Fill free space of a mounted filesystem with zeros, then release it.

    For FAT, where zerofree does not work. dd ends with ENOSPC.
    """

    filler = f"{mounted_dir}/{FILLER_NAME}"
    run_cmd(["dd", "if=/dev/zero", f"of={filler}", "bs=1M"], check=False, privileged=True, dry_run=dry_run)
    run_cmd(["rm", filler], check=False, privileged=True, dry_run=dry_run)


def zerofree(part: str, *, dry_run: bool = False) -> None:
    run_cmd(["zerofree", part], privileged=True, dry_run=dry_run)
