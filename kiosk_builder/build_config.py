from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

_DISK_ID_RE = re.compile(r"^0x[0-9a-fA-F]{1,8}$")


@dataclass(frozen=True)
class BuildConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def work_dir(self) -> str:
        return str(self._section("paths").get("work_dir") or "work")

    @property
    def build_root(self) -> str:
        return str(Path(self.work_dir) / "root")

    @property
    def base_image_cache(self) -> str:
        return str(self._section("paths").get("base_image_cache") or "raspios.img.xz")

    @property
    def working_image(self) -> str:
        return str(self._section("paths").get("working_image") or "raspikiosk.img")

    @property
    def output_dir(self) -> str:
        return str(self._section("paths").get("output_dir") or ".")

    @property
    def skeleton_dir(self) -> str:
        return str(self._section("overlays").get("skeleton") or "raspberry_pi_skeleton")

    @property
    def provision_dir(self) -> str:
        return str(self._section("overlays").get("provision") or "kiosk_skeleton")

    @property
    def custom_dir(self) -> str:
        return str(self._section("overlays").get("custom") or "custom")

    @property
    def provision_script(self) -> str:
        return str(self._section("provision").get("script") or "build.sh")

    @property
    def grow_by(self) -> str:
        return str(self._section("image").get("grow_by") or "3G")

    @property
    def disk_identifier(self) -> str:
        v = self._section("image").get("disk_identifier")
        # unquoted 0x... in YAML loads as an int
        if isinstance(v, int) and not isinstance(v, bool):
            return f"0x{v:08x}"
        return str(v or "0x23421312")

    @property
    def version_label(self) -> str:
        return str(self._section("image").get("version_label") or "AnotterKiosk Raspberry Pi version")

    @property
    def output_prefix(self) -> str:
        return str(self._section("image").get("output_prefix") or "anotterkiosk")

    @property
    def compress_threads(self) -> int:
        return int(self._section("compress").get("threads") or 0)

    @property
    def download_timeout_s(self) -> float:
        return float(self._section("download").get("timeout_s") or 60)

    @property
    def detach_all_loops(self) -> bool:
        v = self._section("host").get("detach_all_loops")
        return True if v is None else bool(v)

    def validate(self) -> "BuildConfig":
        for name in ("paths", "overlays", "provision", "image", "compress", "download", "host"):
            if not isinstance(self._section(name), dict):
                raise ValueError(f"build config section {name!r} must be a mapping")
        if not _DISK_ID_RE.match(self.disk_identifier):
            raise ValueError(f"image.disk_identifier must look like 0x23421312, got {self.disk_identifier!r}")
        if self.compress_threads < 0:
            raise ValueError("compress.threads must be >= 0")
        return self


def load_build_config(path: str, *, required: bool = False) -> BuildConfig:
    """Load the YAML build config; a missing optional file means all defaults."""

    p = Path(path)
    if not p.exists():
        if required:
            raise FileNotFoundError(path)
        return BuildConfig()

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("build config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{p.name} must contain a mapping/object")

    return BuildConfig(raw=raw).validate()
