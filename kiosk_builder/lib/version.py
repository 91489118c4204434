from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)

DRY_RUN_TAG = "dry-run"


def describe_version(*, cwd: str | None = None, dry_run: bool = False) -> str:
    """Return the source-control version tag of the checkout at cwd."""

    r = run_cmd(["git", "describe", "--abbrev=4", "--dirty", "--always", "--tags"], cwd=cwd, dry_run=dry_run)
    tag = (r.stdout or "").strip()
    if not tag:
        if dry_run:
            return DRY_RUN_TAG
        raise RuntimeError("git describe returned no version")
    return tag


def version_info_text(label: str, tag: str) -> str:
    return f"{label}: {tag}\n"


def output_image_name(prefix: str, tag: str, suffix: str) -> str:
    return f"{prefix}-{tag}-{suffix}.img"
