from __future__ import annotations

import logging
import signal
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator

from . import loopdev
from .storage import MOUNT_POINTS, mount_point, umount

logger = logging.getLogger(__name__)

TRAPPED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)
# Held off while cleanup runs so a second Ctrl-C cannot leave the loop device attached.
DEFERRED_SIGNALS = (signal.SIGINT, *TRAPPED_SIGNALS)


class BuildCleanup:
    """Unmount the build root and detach the loop device, at most once.

    Reads the loop device from state["execution"]["loop_device"] at call time,
    so it sees whatever the steps attached so far. Every operation is attempted
    even if an earlier one blew up, interrupts included. Never raises.
    """

    def __init__(self, build_root: str, state: Dict[str, Any], *, dry_run: bool = False) -> None:
        self.build_root = build_root
        self.state = state
        self.dry_run = dry_run
        self.calls = 0

    @property
    def done(self) -> bool:
        return self.calls > 0

    def _attempt(self, what: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except BaseException:
            logger.exception("%s during cleanup failed", what)

    def __call__(self) -> None:
        if self.done:
            return
        self.calls += 1

        logger.info("Cleaning up...")
        for rel in MOUNT_POINTS:
            target = mount_point(self.build_root, rel)
            self._attempt(f"Unmount of {target}", lambda: umount(target, dry_run=self.dry_run))

        dev = (self.state.get("execution") or {}).get("loop_device")
        if dev:
            self._attempt(f"Detach of {dev}", lambda: loopdev.detach(dev, check=False, dry_run=self.dry_run))
            self.state["execution"]["loop_device"] = None


def _raise_exit(signum: int, _frame: Any) -> None:
    logger.warning("Received signal %s, aborting build", signum)
    raise SystemExit(128 + signum)


@contextmanager
def _signals_ignored(signals) -> Iterator[None]:
    previous = {sig: signal.signal(sig, signal.SIG_IGN) for sig in signals}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextmanager
def cleanup_on_exit(cleanup: Callable[[], None]) -> Iterator[None]:
    """Run cleanup however the block exits: success, error or termination signal.

    SIGINT already surfaces as KeyboardInterrupt; SIGTERM/SIGHUP are turned
    into SystemExit so the same unwinding applies. While cleanup itself runs,
    all three are ignored.
    """

    previous = {}
    for sig in TRAPPED_SIGNALS:
        previous[sig] = signal.signal(sig, _raise_exit)
    try:
        yield
    finally:
        try:
            with _signals_ignored(DEFERRED_SIGNALS):
                cleanup()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
