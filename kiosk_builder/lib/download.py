from __future__ import annotations

import hashlib
import logging
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ChecksumMismatchError(RuntimeError):
    pass


def sha256_file(path: str | Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: str | Path, expected: str) -> bool:
    return sha256_file(path) == expected.strip().lower()


def download_file(url: str, dest: str | Path, *, timeout_s: float = 60.0) -> Path:
    """Stream url to dest. The file only appears under dest once complete."""

    d = Path(dest)
    d.parent.mkdir(parents=True, exist_ok=True)
    part = d.with_name(d.name + ".part")

    with requests.Session() as session:
        resp = session.get(url, stream=True, timeout=timeout_s)
        resp.raise_for_status()
        with part.open("wb") as f:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    f.write(chunk)

    part.replace(d)
    return d


def _fetch_and_verify(url: str, expected: str, dest: Path, timeout_s: float) -> None:
    download_file(url, dest, timeout_s=timeout_s)
    if not verify_checksum(dest, expected):
        raise ChecksumMismatchError(f"downloaded image {dest} does not match checksum {expected}")


def ensure_base_image(
    url: str,
    expected: str,
    cache_path: str | Path,
    *,
    timeout_s: float = 60.0,
    dry_run: bool = False,
) -> Path:
    """Return a verified base image, using the cached copy when it checks out.

    A cached copy with a bad checksum is re-downloaded exactly once.
    """

    p = Path(cache_path)

    if not p.exists():
        if dry_run:
            logger.info("Would download %s -> %s", url, p)
            return p
        logger.info("Downloading base image %s", url)
        _fetch_and_verify(url, expected, p, timeout_s)
        return p

    logger.info("Using cached base image %s", p)
    if verify_checksum(p, expected):
        return p

    if dry_run:
        logger.info("Cached image checksum mismatch; would re-download %s", url)
        return p

    logger.warning("Cached image checksum mismatch, re-downloading...")
    p.unlink()
    _fetch_and_verify(url, expected, p, timeout_s)
    return p
