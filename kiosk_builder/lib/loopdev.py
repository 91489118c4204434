from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)

DRY_RUN_DEVICE = "/dev/loop-dry-run"


def partition(dev: str, n: int) -> str:
    # loop devices always use the p suffix
    return f"{dev}p{n}"


def attach(image: str, *, dry_run: bool = False) -> str:
    """Attach image to the first free loop device, with partition scanning."""

    r = run_cmd(["losetup", "--show", "-f", "-P", image], privileged=True, dry_run=dry_run)
    dev = (r.stdout or "").strip()
    if not dev:
        if dry_run:
            return DRY_RUN_DEVICE
        raise RuntimeError(f"losetup returned no device for {image}")
    logger.info("Using loop device: %s", dev)
    return dev


def detach(dev: str, *, check: bool = True, dry_run: bool = False) -> None:
    run_cmd(["losetup", "-d", dev], check=check, privileged=True, dry_run=dry_run)


def detach_all(*, dry_run: bool = False) -> None:
    run_cmd(["losetup", "-D"], check=False, privileged=True, dry_run=dry_run)
