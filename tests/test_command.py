from __future__ import annotations

import subprocess

import pytest

from kiosk_builder.lib import command
from kiosk_builder.lib.command import CommandError, ensure_sbin_on_path, run_cmd


def test_privileged_command_uses_sudo_when_not_root(fake_commands, monkeypatch):
    monkeypatch.setattr(command.os, "geteuid", lambda: 1000)

    r = run_cmd(["losetup", "-D"], privileged=True)

    assert fake_commands.calls == [["sudo", "losetup", "-D"]]
    assert r.argv == ["sudo", "losetup", "-D"]


def test_privileged_command_runs_directly_as_root(fake_commands):
    run_cmd(["losetup", "-D"], privileged=True)
    run_cmd(["git", "describe"])

    assert fake_commands.calls == [["losetup", "-D"], ["git", "describe"]]


def test_failure_raises_command_error_with_result(fake_commands):
    fake_commands.on("zerofree", returncode=1, stderr="filesystem is mounted")

    with pytest.raises(CommandError) as excinfo:
        run_cmd(["zerofree", "/dev/loop0p2"])

    assert excinfo.value.result.returncode == 1
    assert "filesystem is mounted" in str(excinfo.value)
    assert isinstance(excinfo.value, RuntimeError)


def test_unchecked_failure_is_returned(fake_commands, caplog):
    fake_commands.on("umount", returncode=32)

    r = run_cmd(["umount", "-fl", "/nowhere"], check=False)

    assert r.returncode == 32
    assert "Ignoring failure" in caplog.text


def test_input_text_is_passed_to_process(fake_commands):
    run_cmd(["sfdisk", "-N2", "disk.img"], input_text=", +\n")

    assert fake_commands.inputs == [", +\n"]


def test_output_is_captured_by_default(fake_commands):
    run_cmd(["git", "describe"])

    assert fake_commands.kwargs[-1]["stdout"] is subprocess.PIPE
    assert fake_commands.kwargs[-1]["stderr"] is subprocess.PIPE


def test_streamed_output_goes_to_terminal(fake_commands):
    fake_commands.on("chroot", stdout=None, stderr=None)

    r = run_cmd(["chroot", "root", "/build.sh"], stream=True)

    assert fake_commands.kwargs[-1]["stdout"] is None
    assert fake_commands.kwargs[-1]["stderr"] is None
    assert (r.stdout, r.stderr) == ("", "")


def test_dry_run_does_not_execute(fake_commands):
    r = run_cmd(["fstrim", "-a"], privileged=True, dry_run=True)

    assert fake_commands.calls == []
    assert r.returncode == 0


def test_ensure_sbin_on_path_appends_once(monkeypatch):
    monkeypatch.setenv("PATH", "/usr/bin:/bin")

    ensure_sbin_on_path()
    path = ensure_sbin_on_path()

    assert path.split(":") == ["/usr/bin", "/bin", "/usr/sbin", "/sbin"]
