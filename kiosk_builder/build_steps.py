from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from .build_config import BuildConfig
from .build_state import mark_completed
from .lib import loopdev, storage
from .lib.assets import sync_tree
from .lib.chroot import chroot_cmd, mount_chroot_filesystems, umount_chroot_filesystems
from .lib.command import run_cmd
from .lib.download import ensure_base_image, sha256_file
from .lib.version import describe_version, output_image_name, version_info_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildCtx:
    cfg: BuildConfig
    source_url: str
    sha256: str
    image_suffix: str
    dry_run: bool = False

    @property
    def build_root(self) -> str:
        return self.cfg.build_root

    @property
    def boot_dir(self) -> str:
        return storage.mount_point(self.build_root, "boot/firmware")

    @property
    def cache_path(self) -> Path:
        return Path(self.cfg.base_image_cache)

    @property
    def decompressed_path(self) -> Path:
        # xz -kd drops the .xz suffix next to the cached archive
        return self.cache_path.with_suffix("")

    @property
    def image_path(self) -> Path:
        return Path(self.cfg.working_image)

    @property
    def provision_root(self) -> str:
        return f"{self.build_root}/{Path(self.cfg.provision_dir).name}"


def _exe(state: Dict[str, Any]) -> Dict[str, Any]:
    return state.setdefault("execution", {})


def _loop_device(state: Dict[str, Any]) -> str:
    dev = _exe(state).get("loop_device")
    if not dev:
        raise RuntimeError("execution.loop_device missing; image is not attached")
    return dev


def step_00_fetch_base_image(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "00_fetch_base_image"

    # Nothing on the host has been touched yet; a checksum mismatch stops here.
    path = ensure_base_image(
        ctx.source_url,
        ctx.sha256,
        ctx.cache_path,
        timeout_s=ctx.cfg.download_timeout_s,
        dry_run=ctx.dry_run,
    )
    state.setdefault("outputs", {})["base_image"] = str(path)

    mark_completed(state, step_id)


def step_01_prepare_workdir(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "01_prepare_workdir"

    # Leftovers of an interrupted earlier run
    storage.umount_all(ctx.build_root, dry_run=ctx.dry_run)
    if ctx.cfg.detach_all_loops:
        loopdev.detach_all(dry_run=ctx.dry_run)
    run_cmd(["rm", "-rf", ctx.build_root], check=False, privileged=True, dry_run=ctx.dry_run)

    if not ctx.dry_run:
        Path(ctx.build_root).mkdir(parents=True, exist_ok=True)

    mark_completed(state, step_id)


def step_02_expand_image(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "02_expand_image"

    if not ctx.dry_run:
        ctx.decompressed_path.unlink(missing_ok=True)
    run_cmd(["xz", "-kd", str(ctx.cache_path)], dry_run=ctx.dry_run)
    if not ctx.dry_run:
        ctx.decompressed_path.replace(ctx.image_path)

    img = str(ctx.image_path)
    storage.grow_image_file(img, ctx.cfg.grow_by, dry_run=ctx.dry_run)
    storage.grow_partition(img, storage.ROOT_PARTITION, dry_run=ctx.dry_run)

    mark_completed(state, step_id)


def step_03_attach_loop(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "03_attach_loop"

    dev = loopdev.attach(str(ctx.image_path), dry_run=ctx.dry_run)
    _exe(state)["loop_device"] = dev

    storage.resize_filesystem(loopdev.partition(dev, storage.ROOT_PARTITION), dry_run=ctx.dry_run)
    storage.set_disk_identifier(dev, ctx.cfg.disk_identifier, dry_run=ctx.dry_run)

    mark_completed(state, step_id)


def step_04_mount_partitions(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "04_mount_partitions"

    dev = _loop_device(state)
    storage.mount(loopdev.partition(dev, storage.ROOT_PARTITION), ctx.build_root, dry_run=ctx.dry_run)
    storage.mount(loopdev.partition(dev, storage.BOOT_PARTITION), ctx.boot_dir, dry_run=ctx.dry_run)

    mark_completed(state, step_id)


def step_05_apply_overlays(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "05_apply_overlays"

    root = ctx.build_root
    boot = ctx.boot_dir

    # The skeleton spans the FAT boot partition too, so no owner/group.
    sync_tree(ctx.cfg.skeleton_dir, root, preserve_owner=False, dry_run=ctx.dry_run)
    sync_tree(ctx.cfg.provision_dir, ctx.provision_root, dry_run=ctx.dry_run)

    if Path(ctx.cfg.custom_dir).is_dir():
        logger.info("Copying custom files to bootfs...")
        sync_tree(ctx.cfg.custom_dir, f"{boot}/", preserve_owner=False, verbose=True, dry_run=ctx.dry_run)

    # Architecture specific config.txt (arm64/armhf)
    run_cmd(["rm", f"{boot}/config.txt"], privileged=True, dry_run=ctx.dry_run)
    run_cmd(
        ["mv", f"{boot}/config-{ctx.image_suffix}.txt", f"{boot}/config.txt"],
        privileged=True,
        dry_run=ctx.dry_run,
    )

    mark_completed(state, step_id)


def step_06_write_version_info(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "06_write_version_info"

    tag = describe_version(dry_run=ctx.dry_run)
    text = version_info_text(ctx.cfg.version_label, tag)
    state.setdefault("outputs", {})["version_tag"] = tag

    run_cmd(
        ["tee", f"{ctx.build_root}/version-info"],
        privileged=True,
        input_text=text,
        dry_run=ctx.dry_run,
    )

    mark_completed(state, step_id)


def step_07_provision_chroot(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "07_provision_chroot"

    root = ctx.build_root
    script = f"/{Path(ctx.cfg.provision_dir).name}/{ctx.cfg.provision_script}"

    mount_chroot_filesystems(root, dry_run=ctx.dry_run)
    try:
        chroot_cmd(root, [script], dry_run=ctx.dry_run)
    finally:
        umount_chroot_filesystems(root, dry_run=ctx.dry_run)

    run_cmd(["rm", "-r", ctx.provision_root], privileged=True, dry_run=ctx.dry_run)

    if not ctx.dry_run:
        tag = state.get("outputs", {}).get("version_tag", "")
        Path("version-info").write_text(version_info_text(ctx.cfg.version_label, tag), encoding="utf-8")

    mark_completed(state, step_id)


def step_08_trim_free_space(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "08_trim_free_space"

    storage.trim_all(dry_run=ctx.dry_run)
    # FAT32 boot partition: zerofree does not apply, fill it manually.
    storage.zero_fill_free_space(ctx.boot_dir, dry_run=ctx.dry_run)

    mark_completed(state, step_id)


def step_09_release_image(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "09_release_image"

    dev = _loop_device(state)
    storage.release_all(ctx.build_root, dry_run=ctx.dry_run)

    # ext4 root: zero unused blocks for better compression
    storage.zerofree(loopdev.partition(dev, storage.ROOT_PARTITION), dry_run=ctx.dry_run)

    loopdev.detach(dev, check=False, dry_run=ctx.dry_run)
    _exe(state)["loop_device"] = None

    mark_completed(state, step_id)


def step_10_compress_output(*, ctx: BuildCtx, state: Dict[str, Any]) -> None:
    step_id = "10_compress_output"

    outputs = state.setdefault("outputs", {})
    tag = outputs.get("version_tag") or describe_version(dry_run=ctx.dry_run)

    out_dir = Path(ctx.cfg.output_dir)
    img = out_dir / output_image_name(ctx.cfg.output_prefix, tag, ctx.image_suffix)
    xz_path = img.with_name(img.name + ".xz")

    if not ctx.dry_run:
        out_dir.mkdir(parents=True, exist_ok=True)
        xz_path.unlink(missing_ok=True)
        ctx.image_path.replace(img)

    run_cmd(["xz", f"-T{ctx.cfg.compress_threads}", str(img)], dry_run=ctx.dry_run)

    if not ctx.dry_run:
        digest = sha256_file(xz_path)
        Path(str(xz_path) + ".sha256").write_text(f"{digest}  {xz_path.name}\n", encoding="utf-8")
        outputs["sha256"] = digest

    outputs["image"] = str(xz_path)
    logger.info("Image written: %s", xz_path)

    mark_completed(state, step_id)


ALL_STEPS = [
    step_00_fetch_base_image,
    step_01_prepare_workdir,
    step_02_expand_image,
    step_03_attach_loop,
    step_04_mount_partitions,
    step_05_apply_overlays,
    step_06_write_version_info,
    step_07_provision_chroot,
    step_08_trim_free_space,
    step_09_release_image,
    step_10_compress_output,
]
