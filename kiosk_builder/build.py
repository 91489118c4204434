from __future__ import annotations

import argparse
import logging
import re
from pathlib import Path
from typing import Optional

from .build_config import load_build_config
from .build_state import new_build_state, record_error, save_build_state
from .build_steps import ALL_STEPS, BuildCtx
from .lib.cleanup import BuildCleanup, cleanup_on_exit
from .lib.command import ensure_sbin_on_path
from .logging_utils import DEFAULT_LOG_PATH, configure_logging

logger = logging.getLogger(__name__)


DEFAULT_BUILD_CONFIG = "build_config.yaml"
DEFAULT_BUILD_STATE = "build/build_state.json"

_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def _step_id(fn) -> str:
    name = fn.__name__
    return name[len("step_"):] if name.startswith("step_") else name


def run_build(
    *,
    source_url: str,
    sha256: str,
    image_suffix: str,
    config_path: str = DEFAULT_BUILD_CONFIG,
    config_required: bool = False,
    state_path: str = DEFAULT_BUILD_STATE,
    log_path: str = DEFAULT_LOG_PATH,
    dry_run: bool = False,
    verbose: bool = False,
) -> Path:
    """Build the image and return the path of the compressed artifact."""

    configure_logging(log_path=log_path, verbose=verbose)
    ensure_sbin_on_path()

    cfg = load_build_config(config_path, required=config_required)
    state = new_build_state(source_url=source_url, sha256=sha256, image_suffix=image_suffix)
    ctx = BuildCtx(cfg=cfg, source_url=source_url, sha256=sha256, image_suffix=image_suffix, dry_run=dry_run)

    cleanup = BuildCleanup(ctx.build_root, state, dry_run=dry_run)
    exe = state["execution"]

    try:
        with cleanup_on_exit(cleanup):
            for fn in ALL_STEPS:
                exe["current_step"] = _step_id(fn)
                logger.info("=== %s ===", exe["current_step"])
                fn(ctx=ctx, state=state)
                save_build_state(state_path, state)
        exe["current_step"] = None
        return Path(state["outputs"]["image"])
    except BaseException as e:
        logger.exception("Build failed at %s", exe.get("current_step"))
        record_error(state, e)
        raise
    finally:
        save_build_state(state_path, state)


def _sha256_arg(value: str) -> str:
    if not _SHA256_RE.match(value.strip()):
        raise argparse.ArgumentTypeError("expected a 64 character hex SHA-256 digest")
    return value.strip().lower()


def _suffix_arg(value: str) -> str:
    if not value or "/" in value:
        raise argparse.ArgumentTypeError("image suffix must be non-empty and contain no '/'")
    return value


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="kiosk-build")
    p.add_argument("source_url", help="URL of the compressed base OS image (.img.xz)")
    p.add_argument("sha256", type=_sha256_arg, help="Expected SHA-256 of the compressed image")
    p.add_argument("image_suffix", type=_suffix_arg, help="Architecture tag, selects config-<suffix>.txt (arm64|armhf)")
    p.add_argument("--config", default=None, help=f"Build config YAML (default: {DEFAULT_BUILD_CONFIG} if present)")
    p.add_argument("--state", default=DEFAULT_BUILD_STATE)
    p.add_argument("--log", default=DEFAULT_LOG_PATH)
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("-v", "--verbose", action="store_true", help="Log command output")

    args = p.parse_args(argv)

    run_build(
        source_url=args.source_url,
        sha256=args.sha256,
        image_suffix=args.image_suffix,
        config_path=args.config or DEFAULT_BUILD_CONFIG,
        config_required=args.config is not None,
        state_path=args.state,
        log_path=args.log,
        dry_run=bool(args.dry_run),
        verbose=bool(args.verbose),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
