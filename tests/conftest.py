"""Test fixtures: a recording stand-in for subprocess.run behind run_cmd."""

from __future__ import annotations

import hashlib
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from kiosk_builder.lib import command


@dataclass
class _Rule:
    prefix: tuple
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    effect: Optional[Callable[[List[str]], None]] = None


@dataclass
class FakeCommands:
    """Records every argv run_cmd executes and answers from scripted rules."""

    calls: List[List[str]] = field(default_factory=list)
    inputs: List[Optional[str]] = field(default_factory=list)
    kwargs: List[dict] = field(default_factory=list)
    rules: List[_Rule] = field(default_factory=list)

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Optional[Callable[[List[str]], None]] = None,
    ) -> None:
        # Later rules win, so tests can override fixture defaults.
        self.rules.insert(0, _Rule(tuple(prefix), returncode, stdout, stderr, effect))

    def __call__(self, argv, *, input=None, **kwargs) -> subprocess.CompletedProcess:
        argv = list(argv)
        self.calls.append(argv)
        self.inputs.append(input)
        self.kwargs.append(kwargs)
        for rule in self.rules:
            if tuple(argv[: len(rule.prefix)]) == rule.prefix:
                if rule.effect is not None:
                    rule.effect(argv)
                return subprocess.CompletedProcess(argv, rule.returncode, rule.stdout, rule.stderr)
        return subprocess.CompletedProcess(argv, 0, "", "")

    def matching(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]

    def programs(self) -> List[str]:
        return [c[0] for c in self.calls]

    def index_of(self, argv: Sequence[str]) -> int:
        return self.calls.index(list(argv))


@pytest.fixture
def fake_commands(monkeypatch: pytest.MonkeyPatch) -> FakeCommands:
    fake = FakeCommands()
    monkeypatch.setattr(command.subprocess, "run", fake)
    # Behave as root so privileged commands are not prefixed with sudo.
    monkeypatch.setattr(command.os, "geteuid", lambda: 0)
    return fake


BASE_IMAGE = b"pretend this is a raspios image"
LOOP_DEVICE = "/dev/loop7"
VERSION_TAG = "v1.4-2-gab12"


def _decompress(argv: List[str]) -> None:
    src = Path(argv[-1])
    src.with_suffix("").write_bytes(src.read_bytes())


def _compress(argv: List[str]) -> None:
    img = Path(argv[-1])
    Path(str(img) + ".xz").write_bytes(b"xz:" + img.read_bytes())
    img.unlink()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, fake_commands: FakeCommands) -> Path:
    """A project checkout with skeleton trees, a cached base image and scripted tools."""

    monkeypatch.chdir(tmp_path)
    (tmp_path / "raspberry_pi_skeleton" / "boot" / "firmware").mkdir(parents=True)
    (tmp_path / "raspberry_pi_skeleton" / "boot" / "firmware" / "config-arm64.txt").write_text("arm_64bit=1\n")
    (tmp_path / "kiosk_skeleton").mkdir()
    (tmp_path / "kiosk_skeleton" / "build.sh").write_text("#!/bin/bash\n")
    (tmp_path / "raspios.img.xz").write_bytes(BASE_IMAGE)

    fake_commands.on("xz", "-kd", effect=_decompress)
    fake_commands.on("xz", "-T0", effect=_compress)
    fake_commands.on("losetup", "--show", stdout=LOOP_DEVICE + "\n")
    fake_commands.on("git", "describe", stdout=VERSION_TAG + "\n")
    return tmp_path


@pytest.fixture
def base_sha256() -> str:
    return hashlib.sha256(BASE_IMAGE).hexdigest()
