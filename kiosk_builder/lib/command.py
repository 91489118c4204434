from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

SBIN_DIRS = ("/usr/sbin", "/sbin")


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    def __init__(self, result: CmdResult) -> None:
        self.result = result
        super().__init__(
            f"Command failed ({result.returncode}): {_fmt_argv(result.argv)}\n{result.stderr}"
        )


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _needs_sudo() -> bool:
    return os.geteuid() != 0


def ensure_sbin_on_path() -> str:
    """Append sbin directories to PATH; some containers ship without them."""

    parts = [p for p in os.environ.get("PATH", "").split(os.pathsep) if p]
    for d in SBIN_DIRS:
        if d not in parts:
            parts.append(d)
    os.environ["PATH"] = os.pathsep.join(parts)
    return os.environ["PATH"]


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    privileged: bool = False,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    stream: bool = False,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - privileged commands are prefixed with sudo unless already root.
    - check=False turns a failure into a logged warning (best-effort steps).
    - stream=True leaves stdout/stderr on the terminal for long runs; the
      result then carries no output.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    if privileged and _needs_sudo():
        argv_list = ["sudo", *argv_list]
    logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    p = subprocess.run(
        argv_list,
        input=input_text,
        text=True,
        stdout=None if stream else subprocess.PIPE,
        stderr=None if stream else subprocess.PIPE,
        cwd=cwd,
        env=dict(os.environ, **(env or {})),
    )

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    result = CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout or "", stderr=p.stderr or "")

    if p.returncode != 0:
        if check:
            raise CommandError(result)
        logger.warning("Ignoring failure (%s) of %s", p.returncode, _fmt_argv(argv_list))

    return result
